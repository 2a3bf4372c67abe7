import pytest

from app import TestingConfig, create_app
from models import db


MOVIE = {
    "title": "Neon Skies",
    "description": "A synthwave-soaked heist across a city of light.",
    "poster": "/posters/neon-skies.jpg",
    "genres": ["Action", "Sci-Fi"],
    "director": "Ava Lind",
    "year": 2021,
    "duration": 118,
}


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def dm(app):
    # Only for tests that talk to the DataManager directly. Request tests must
    # not hold an app context open, otherwise flask_login's cached user on `g`
    # leaks from one request into the next.
    with app.app_context():
        yield app.data_manager


@pytest.fixture
def make_user(app):
    def make(name, email, password="secret-pw", role="user"):
        with app.app_context():
            user = app.data_manager.register_user(name, email, password)
            if role != "user":
                app.data_manager.set_role(email, role)
            return user.id
    return make


@pytest.fixture
def make_movie(app):
    def make(**overrides):
        with app.app_context():
            return app.data_manager.create_movie({**MOVIE, **overrides}).id
    return make


@pytest.fixture
def auth(app):
    def headers(user_id):
        return {"Authorization": f"Bearer {app.session_issuer.issue(user_id)}"}
    return headers
