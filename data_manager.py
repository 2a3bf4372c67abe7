# data_manager.py
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import (AuthError, ConflictError, NotFoundError, StoreUnavailableError,
                    ValidationError)
from models import GENRES, ROLES, Movie, Review, User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_YEAR = 1900
DEFAULT_PAGE_SIZE = 10
# One optimistic-concurrency retry after the first attempt.
REVIEW_WRITE_ATTEMPTS = 2

MOVIE_FIELDS = ("title", "description", "poster", "genres", "director", "year", "duration")
TEXT_FIELDS = ("title", "description", "poster", "director")


def _as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer.")
        return int(value)
    if isinstance(value, str):
        value = value.strip()
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.") from None


def _validate_rating(rating) -> int:
    rating = _as_int(rating, "Rating")
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5.")
    return rating


def _validate_genres(genres) -> List[str]:
    if isinstance(genres, str) or not isinstance(genres, (list, tuple)):
        raise ValidationError("genres must be a list.")
    invalid = [g for g in genres if g not in GENRES]
    if invalid:
        raise ValidationError(f"Invalid genres: {', '.join(map(str, invalid))}")
    # ordered set: first occurrence wins
    cleaned = list(dict.fromkeys(genres))
    if not cleaned:
        raise ValidationError("At least one genre is required.")
    return cleaned


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name must not be empty.")
    return name.strip()


def _normalize_email(email) -> str:
    if not isinstance(email, str):
        raise ValidationError("A valid email is required.")
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required.")
    return email


def _validate_password(password) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password


class DataManager:
    """
    Wraps every store operation for users, movies and reviews.
    Raises AppError subclasses which the Flask handlers map to status codes.
    """

    def __init__(self, session, page_size: int = DEFAULT_PAGE_SIZE):
        self.session = session
        self.page_size = page_size

    # --- internal: commit safely ---
    def _commit(self, conflict_message: str = "Conflicting write"):
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            raise
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError(conflict_message) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Store commit failed: %s", e.__class__.__name__)
            raise StoreUnavailableError("Store unavailable") from e

    def _get(self, model, obj_id):
        try:
            return self.session.get(model, obj_id)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Store read failed: %s", e.__class__.__name__)
            raise StoreUnavailableError("Store unavailable") from e

    # ---------- USERS ----------
    def register_user(self, name: str, email: str, password: str) -> User:
        name = _clean_name(name)
        email = _normalize_email(email)
        _validate_password(password)
        if User.query.filter_by(email=email).first():
            raise ConflictError("User already exists")
        user = User(name=name, email=email, password_hash=generate_password_hash(password), role="user")
        self.session.add(user)
        self._commit("User already exists")
        logger.info("Registered user %s", user.id)
        return user

    def authenticate(self, email: str, password: str) -> User:
        if not isinstance(email, str) or not isinstance(password, str):
            raise AuthError("Invalid email or password")
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first() if email else None
        if not user or not password or not check_password_hash(user.password_hash, password):
            raise AuthError("Invalid email or password")
        return user

    def get_users(self) -> List[User]:
        return User.query.order_by(User.id.asc()).all()

    def get_user(self, user_id: int) -> User:
        user = self._get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user_id: int, name: Optional[str] = None, email: Optional[str] = None,
                       current_password: Optional[str] = None, new_password: Optional[str] = None,
                       confirm_password: Optional[str] = None) -> Tuple[User, bool]:
        """Apply a profile update; returns the user and whether the password changed."""
        user = self.get_user(user_id)

        if new_password:
            if not current_password:
                raise ValidationError("Current password is required to set new password")
            if not isinstance(current_password, str):
                raise ValidationError("Current password is incorrect")
            if not check_password_hash(user.password_hash, current_password):
                raise ValidationError("Current password is incorrect")
            _validate_password(new_password)
            if new_password != confirm_password:
                raise ValidationError("Passwords do not match")

        if name is not None:
            name = _clean_name(name)

        if email is not None:
            email = _normalize_email(email)
            if email != user.email and User.query.filter(User.email == email, User.id != user.id).first():
                raise ConflictError("Email already in use")

        # everything validated; apply
        if new_password:
            user.password_hash = generate_password_hash(new_password)
        if name is not None:
            user.name = name
        if email is not None:
            user.email = email
        self._commit("Email already in use")
        return user, bool(new_password)

    def set_role(self, email: str, role: str) -> User:
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role}")
        user = User.query.filter_by(email=_normalize_email(email)).first()
        if not user:
            raise NotFoundError("User not found")
        user.role = role
        self._commit()
        logger.info("User %s role set to %s", user.id, role)
        return user

    def delete_user(self, user_id: int) -> None:
        user = self.get_user(user_id)
        self.session.delete(user)
        self._commit()
        logger.info("Deleted user %s", user_id)

    # ---------- MOVIES ----------
    def _clean_movie_fields(self, fields: dict, partial: bool) -> dict:
        cleaned = {}
        for key in MOVIE_FIELDS:
            if key not in fields or fields[key] is None:
                continue
            value = fields[key]
            if key in TEXT_FIELDS:
                if not isinstance(value, str) or not value.strip():
                    raise ValidationError(f"{key} must not be empty.")
                value = value.strip()
            elif key == "genres":
                value = _validate_genres(value)
            elif key == "year":
                value = _as_int(value, "year")
                max_year = date.today().year + 5
                if not MIN_YEAR <= value <= max_year:
                    raise ValidationError(f"year must be between {MIN_YEAR} and {max_year}.")
            elif key == "duration":
                value = _as_int(value, "duration")
                if value < 1:
                    raise ValidationError("duration must be at least 1 minute.")
            cleaned[key] = value

        if not partial:
            missing = [k for k in MOVIE_FIELDS if k not in cleaned]
            if missing:
                raise ValidationError("Please fill in all required fields")
        return cleaned

    def create_movie(self, fields: dict) -> Movie:
        movie = Movie(**self._clean_movie_fields(fields, partial=False))
        self.session.add(movie)
        self._commit()
        logger.info("Created movie %s", movie.id)
        return movie

    def get_movie(self, movie_id: int) -> Movie:
        movie = self._get(Movie, movie_id)
        if not movie:
            raise NotFoundError("Movie not found")
        return movie

    def list_movies(self, keyword: Optional[str] = None, page: int = 1):
        query = Movie.query
        keyword = (keyword or "").strip()
        if keyword:
            query = query.filter(Movie.title.icontains(keyword, autoescape=True))
        query = query.order_by(Movie.created_at.desc(), Movie.id.desc())
        try:
            return query.paginate(page=max(page, 1), per_page=self.page_size, error_out=False)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Store read failed: %s", e.__class__.__name__)
            raise StoreUnavailableError("Store unavailable") from e

    def update_movie(self, movie_id: int, fields: dict) -> Movie:
        movie = self.get_movie(movie_id)
        for key, value in self._clean_movie_fields(fields, partial=True).items():
            setattr(movie, key, value)
        self._commit_movie_write(movie_id)
        return movie

    def delete_movie(self, movie_id: int) -> None:
        movie = self.get_movie(movie_id)
        self.session.delete(movie)
        self._commit_movie_write(movie_id)
        logger.info("Deleted movie %s", movie_id)

    def _commit_movie_write(self, movie_id: int) -> None:
        try:
            self._commit()
        except StaleDataError as e:
            logger.warning("Movie %s changed concurrently", movie_id)
            raise ConflictError("Movie was modified concurrently, please retry") from e

    # ---------- REVIEWS ----------
    def _names_for(self, reviews) -> dict:
        user_ids = {r.user_id for r in reviews}
        if not user_ids:
            return {}
        rows = self.session.query(User.id, User.name).filter(User.id.in_(user_ids)).all()
        return {uid: name for uid, name in rows}

    def serialize_reviews(self, movie: Movie) -> List[dict]:
        names = self._names_for(movie.reviews)
        return [r.to_dict(name=names.get(r.user_id)) for r in movie.reviews]

    def get_movie_detail(self, movie_id: int) -> dict:
        movie = self.get_movie(movie_id)
        data = movie.to_dict()
        data["reviews"] = self.serialize_reviews(movie)
        return data

    def list_reviews(self, movie_id: int) -> Tuple[List[dict], float, int]:
        """Reviews in insertion order plus the cached aggregates (never recomputed here)."""
        movie = self.get_movie(movie_id)
        return self.serialize_reviews(movie), movie.average_rating, movie.num_reviews

    def _with_retry(self, operation, movie_id: int, *args):
        for attempt in range(1, REVIEW_WRITE_ATTEMPTS + 1):
            try:
                return operation(movie_id, *args)
            except StaleDataError:
                logger.warning("Concurrent update on movie %s (attempt %d)", movie_id, attempt)
        raise StoreUnavailableError("Movie is busy, please retry")

    def add_review(self, movie_id: int, user_id: int, display_name: str, rating, body) -> Review:
        return self._with_retry(self._add_review_once, movie_id, user_id, display_name, rating, body)

    def _add_review_once(self, movie_id, user_id, display_name, rating, body) -> Review:
        movie = self.get_movie(movie_id)
        if movie.review_by(user_id) is not None:
            raise ConflictError("Movie already reviewed")

        rating = _validate_rating(rating)
        body = body.strip() if isinstance(body, str) else ""
        if not body:
            raise ValidationError("Review text must not be empty.")

        review = Review(user_id=user_id, name=display_name, rating=rating, body=body)
        movie.reviews.append(review)
        movie.refresh_aggregates()
        self._commit("Movie already reviewed")
        logger.info("User %s reviewed movie %s", user_id, movie_id)
        return review

    def remove_review(self, movie_id: int, user_id: int) -> None:
        self._with_retry(self._remove_review_once, movie_id, user_id)

    def _remove_review_once(self, movie_id, user_id) -> None:
        movie = self.get_movie(movie_id)
        review = movie.review_by(user_id)
        if review is None:
            raise NotFoundError("Review not found")
        movie.reviews.remove(review)
        movie.refresh_aggregates()
        self._commit()
        logger.info("User %s removed review on movie %s", user_id, movie_id)
