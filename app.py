"""Movie review Flask application."""

from __future__ import annotations

import logging
import os
from typing import Optional

import click
from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, request
from flask_login import LoginManager, current_user
from werkzeug.exceptions import HTTPException

from data_manager import DEFAULT_PAGE_SIZE, DataManager
from errors import AppError, AuthError, ValidationError
from models import db, User
from policy import AUTHENTICATED, PUBLIC, requires, role
from sessions import DEFAULT_TTL, SessionIssuer

load_dotenv()


class Config:
    BASEDIR = os.path.abspath(os.path.dirname(__file__))
    DATA_DIR = os.path.join(BASEDIR, "data")

    DEFAULT_DATABASE_URI = f"sqlite:///{os.path.join(DATA_DIR, 'movies.db')}"
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    STORE_TIMEOUT_SECONDS = int(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(DEFAULT_TTL)))
    AUTH_COOKIE_NAME = "auth_token"
    AUTH_COOKIE_SECURE = False

    MOVIES_PAGE_SIZE = int(os.getenv("MOVIES_PAGE_SIZE", str(DEFAULT_PAGE_SIZE)))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    DEBUG = False
    AUTH_COOKIE_SECURE = True


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


def _engine_options(uri: str, timeout: int) -> dict:
    if uri.startswith("sqlite"):
        if uri in ("sqlite://", "sqlite:///:memory:"):
            return {}
        return {"connect_args": {"timeout": timeout}}
    return {"pool_timeout": timeout, "pool_pre_ping": True}


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _credential_from(req) -> Optional[str]:
    header = req.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1].strip()
    return req.cookies.get(current_app.config["AUTH_COOKIE_NAME"])


def _with_credential(response, token: str, max_age: Optional[int] = None):
    cfg = current_app.config
    response.set_cookie(
        cfg["AUTH_COOKIE_NAME"],
        token,
        max_age=cfg["SESSION_TTL_SECONDS"] if max_age is None else max_age,
        httponly=True,
        samesite="Lax",
        secure=cfg["AUTH_COOKIE_SECURE"],
    )
    return response


def create_app(config: Optional[type[Config]] = None) -> Flask:
    app = Flask(__name__)
    cfg_class = config or (DevelopmentConfig if os.getenv("FLASK_ENV") == "development" else ProductionConfig)
    app.config.from_object(cfg_class)
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        _engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config["STORE_TIMEOUT_SECONDS"]),
    )
    if app.config["SQLALCHEMY_DATABASE_URI"] == cfg_class.DEFAULT_DATABASE_URI:
        os.makedirs(cfg_class.DATA_DIR, exist_ok=True)
    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("data_manager").setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    login_manager = LoginManager()
    login_manager.init_app(app)

    app.session_issuer = SessionIssuer(app.config["SECRET_KEY"], ttl=app.config["SESSION_TTL_SECONDS"])  # type: ignore[attr-defined]

    @login_manager.request_loader
    def load_user_from_request(req) -> Optional[User]:
        token = _credential_from(req)
        if not token:
            return None
        try:
            user_id = app.session_issuer.verify(token)  # type: ignore[attr-defined]
        except AuthError as err:
            app.logger.debug("Rejected credential: %s", err)
            return None
        return db.session.get(User, user_id)

    with app.app_context():
        db.create_all()

    app.data_manager = DataManager(db.session, page_size=app.config["MOVIES_PAGE_SIZE"])  # type: ignore[attr-defined]

    def issue_for(user: User) -> str:
        return app.session_issuer.issue(user.id)  # type: ignore[attr-defined]

    # ---------- USERS ----------
    @app.route("/api/users", methods=["POST"])
    @requires(PUBLIC)
    def register():
        data = _json_body()
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        user = dm.register_user(data.get("name"), data.get("email"), data.get("password"))
        token = issue_for(user)
        return _with_credential(jsonify({"success": True, "token": token, "user": user.to_dict()}), token), 201

    @app.route("/api/users/auth", methods=["POST"])
    @requires(PUBLIC)
    def login():
        data = _json_body()
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        user = dm.authenticate(data.get("email"), data.get("password"))
        token = issue_for(user)
        body = {
            "success": True,
            "message": f"Login Successful, {user.name}!",
            "token": token,
            "user": user.to_dict(),
        }
        return _with_credential(jsonify(body), token)

    @app.route("/api/users/logout", methods=["POST"])
    @requires(PUBLIC)
    def logout():
        revoked = app.session_issuer.revoke()  # type: ignore[attr-defined]
        return _with_credential(jsonify({"message": "Logged out"}), revoked, max_age=0)

    @app.route("/api/users/profile", methods=["GET"])
    @requires(AUTHENTICATED)
    def get_profile():
        return jsonify(current_user.to_dict())

    @app.route("/api/users/profile", methods=["PUT"])
    @requires(AUTHENTICATED)
    def update_profile():
        data = _json_body()
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        user, password_changed = dm.update_profile(
            current_user.id,
            name=data.get("name") or None,
            email=data.get("email") or None,
            current_password=data.get("currentPassword"),
            new_password=data.get("newPassword"),
            confirm_password=data.get("confirmPassword"),
        )
        body = {"success": True, "message": "Profile updated successfully", "user": user.to_dict()}
        if not password_changed:
            return jsonify(body)
        body["token"] = issue_for(user)
        return _with_credential(jsonify(body), body["token"])

    @app.route("/api/users/check-role", methods=["GET"])
    @requires(AUTHENTICATED)
    def check_role():
        is_admin = current_user.is_admin
        return jsonify({
            "role": current_user.role,
            "permissions": {
                "isAdmin": is_admin,
                "canCreateMovies": is_admin,
                "canEditMovies": is_admin,
                "canDeleteMovies": is_admin,
                "canViewUsers": is_admin,
                "canCreateReviews": True,
            },
            "user": current_user.to_dict(),
            "message": f"User authenticated as {current_user.role}",
        })

    @app.route("/api/users/all", methods=["GET"])
    @requires(role("admin"))
    def list_users():
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        return jsonify([u.to_dict() for u in dm.get_users()])

    @app.route("/api/users/<int:user_id>", methods=["DELETE"])
    @requires(role("admin"))
    def delete_user(user_id: int):
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        dm.delete_user(user_id)
        return jsonify({"message": "User removed"})

    # ---------- MOVIES ----------
    @app.route("/api/movies", methods=["GET"])
    @requires(PUBLIC)
    def list_movies():
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        page = request.args.get("page", 1, type=int)
        pagination = dm.list_movies(keyword=request.args.get("keyword"), page=page)
        return jsonify({
            "movies": [m.to_dict() for m in pagination.items],
            "page": pagination.page,
            "pages": pagination.pages,
            "total": pagination.total,
        })

    @app.route("/api/movies", methods=["POST"])
    @requires(role("admin"))
    def create_movie():
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        movie = dm.create_movie(_json_body())
        return jsonify(movie.to_dict()), 201

    @app.route("/api/movies/<int:movie_id>", methods=["GET"])
    @requires(PUBLIC)
    def get_movie(movie_id: int):
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        return jsonify(dm.get_movie_detail(movie_id))

    @app.route("/api/movies/<int:movie_id>", methods=["PUT"])
    @requires(role("admin"))
    def update_movie(movie_id: int):
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        movie = dm.update_movie(movie_id, _json_body())
        return jsonify(movie.to_dict())

    @app.route("/api/movies/<int:movie_id>", methods=["DELETE"])
    @requires(role("admin"))
    def delete_movie(movie_id: int):
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        dm.delete_movie(movie_id)
        return jsonify({"message": "Movie removed successfully"})

    # ---------- REVIEWS ----------
    @app.route("/api/movies/<int:movie_id>/reviews", methods=["GET"])
    @requires(PUBLIC)
    def list_reviews(movie_id: int):
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        reviews, average, count = dm.list_reviews(movie_id)
        return jsonify({"reviews": reviews, "num_reviews": count, "average_rating": average})

    @app.route("/api/movies/<int:movie_id>/reviews", methods=["POST"])
    @requires(AUTHENTICATED)
    def add_review(movie_id: int):
        data = _json_body()
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        review = dm.add_review(movie_id, current_user.id, current_user.name,
                               data.get("rating"), data.get("body", data.get("reviewText")))
        movie = dm.get_movie(movie_id)
        return jsonify({
            "message": "Review added successfully",
            "review": review.to_dict(),
            "average_rating": movie.average_rating,
            "num_reviews": movie.num_reviews,
        }), 201

    @app.route("/api/movies/<int:movie_id>/reviews", methods=["DELETE"])
    @requires(AUTHENTICATED)
    def delete_review(movie_id: int):
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        dm.remove_review(movie_id, current_user.id)
        return jsonify({"message": "Review removed"})

    # ---------- ERRORS ----------
    @app.errorhandler(AppError)
    def app_error(err: AppError):
        if err.status_code >= 500:
            app.logger.error("%s: %s", err.__class__.__name__, err)
        return jsonify({"message": str(err)}), err.status_code

    @app.errorhandler(HTTPException)
    def http_error(err: HTTPException):
        return jsonify({"message": err.description}), err.code

    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        app.logger.exception("Server Error: %s", err)
        return jsonify({"message": "Internal server error"}), 500

    # ---------- CLI ----------
    @app.cli.command("create-admin")
    @click.argument("email")
    def create_admin(email: str):
        """Promote an existing user to admin."""
        dm: DataManager = app.data_manager  # type: ignore[attr-defined]
        try:
            user = dm.set_role(email, "admin")
        except AppError as err:
            raise click.ClickException(str(err)) from err
        click.echo(f"{user.email} is now an admin.")

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app_ = create_app()
    print("Running on http://127.0.0.1:4999 …")
    app_.run(host="127.0.0.1", port=4999, debug=app_.debug)
