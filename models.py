# models.py
from datetime import datetime, timezone

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy

from ratings import aggregate

db = SQLAlchemy()

ROLES = ("user", "admin")

GENRES = (
    "Action",
    "Adventure",
    "Animation",
    "Comedy",
    "Crime",
    "Documentary",
    "Drama",
    "Family",
    "Fantasy",
    "Horror",
    "Mystery",
    "Romance",
    "Sci-Fi",
    "Thriller",
    "Western",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True)
    name          = db.Column(db.String(120), nullable=False)
    email         = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role          = db.Column(db.String(20), nullable=False, default="user")
    created_at    = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at    = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User {self.id}:{self.email} ({self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


class Movie(db.Model):
    __tablename__ = "movies"

    id             = db.Column(db.Integer, primary_key=True)
    title          = db.Column(db.String(255), nullable=False, index=True)
    description    = db.Column(db.Text, nullable=False)
    poster         = db.Column(db.String(1024), nullable=False)
    genres         = db.Column(db.JSON, nullable=False, default=list)
    director       = db.Column(db.String(255), nullable=False)
    year           = db.Column(db.Integer, nullable=False)
    duration       = db.Column(db.Integer, nullable=False)
    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    num_reviews    = db.Column(db.Integer, nullable=False, default=0)
    version_id     = db.Column(db.Integer, nullable=False)
    created_at     = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at     = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    reviews = db.relationship(
        "Review",
        back_populates="movie",
        cascade="all, delete-orphan",
        order_by="Review.id",
    )

    # Every review mutation bumps version_id; a concurrent writer holding a
    # stale copy fails its UPDATE with StaleDataError.
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<Movie {self.id}:{self.title} ({self.year})>"

    def review_by(self, user_id: int):
        for review in self.reviews:
            if review.user_id == user_id:
                return review
        return None

    def refresh_aggregates(self) -> None:
        self.average_rating, self.num_reviews = aggregate(self.reviews)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "poster": self.poster,
            "genres": list(self.genres or []),
            "director": self.director,
            "year": self.year,
            "duration": self.duration,
            "average_rating": self.average_rating,
            "num_reviews": self.num_reviews,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Review(db.Model):
    __tablename__ = "reviews"

    id         = db.Column(db.Integer, primary_key=True)
    movie_id   = db.Column(db.Integer, db.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True)
    # Weak reference: looked up for display, never owned.
    user_id    = db.Column(db.Integer, nullable=False, index=True)
    name       = db.Column(db.String(120), nullable=False)
    rating     = db.Column(db.Integer, nullable=False)
    body       = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    movie = db.relationship("Movie", back_populates="reviews")

    __table_args__ = (
        db.UniqueConstraint("movie_id", "user_id", name="uq_review_movie_user"),
        db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )

    def __repr__(self):
        return f"<Review movie={self.movie_id} user={self.user_id} rating={self.rating}>"

    def to_dict(self, name: str = None) -> dict:
        return {
            "id": self.id,
            "user": self.user_id,
            "name": name or self.name,
            "rating": self.rating,
            "body": self.body,
            "created_at": _iso(self.created_at),
        }
