"""SQLAlchemy ORM models for the movie catalog.

Users, the movie library (with TMDB metadata, genres and cast), reviews,
movie requests, registration requests and the admin audit log.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

from cinescan.core.time_utils import utc_now

Base = declarative_base()

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
ROLES = (ROLE_USER, ROLE_ADMIN)

REQUEST_PENDING = "pending"
REQUEST_PROCESSING = "processing"
REQUEST_AVAILABLE = "available"
MOVIE_REQUEST_STATUSES = (REQUEST_PENDING, REQUEST_PROCESSING, REQUEST_AVAILABLE)

REGISTRATION_PENDING = "PENDING"
REGISTRATION_APPROVED = "APPROVED"
REGISTRATION_REJECTED = "REJECTED"
REGISTRATION_STATUSES = (REGISTRATION_PENDING, REGISTRATION_APPROVED, REGISTRATION_REJECTED)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_created_at", "created_at"),
        Index("ix_users_last_login_at", "last_login_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(10), default=ROLE_USER, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    reviews: Mapped[List["Review"]] = relationship("Review", back_populates="author", cascade="all, delete-orphan", passive_deletes=True)
    movie_requests: Mapped[List["MovieRequest"]] = relationship("MovieRequest", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Movie(Base):
    __tablename__ = "movies"
    __table_args__ = (
        Index("ix_movies_created_at", "created_at"),
        Index("ix_movies_title", "title"),
        Index("ix_movies_weekly", "is_weekly_suggestion"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tmdb_id: Mapped[Optional[int]] = mapped_column(Integer, unique=True, nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    synopsis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    poster_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    trailer_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    release_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_weekly_suggestion: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Local file
    local_path: Mapped[Optional[str]] = mapped_column(String(1024), unique=True, nullable=True)
    filename: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    codec: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    container: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    last_scanned: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    genres: Mapped[List["MovieGenre"]] = relationship("MovieGenre", back_populates="movie", cascade="all, delete-orphan", passive_deletes=True)
    actors: Mapped[List["MovieActor"]] = relationship("MovieActor", back_populates="movie", cascade="all, delete-orphan", passive_deletes=True)
    reviews: Mapped[List["Review"]] = relationship("Review", back_populates="movie", cascade="all, delete-orphan", passive_deletes=True)


class Genre(Base):
    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    movies: Mapped[List["MovieGenre"]] = relationship("MovieGenre", back_populates="genre", cascade="all, delete-orphan", passive_deletes=True)


class Actor(Base):
    __tablename__ = "actors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)

    movies: Mapped[List["MovieActor"]] = relationship("MovieActor", back_populates="actor", cascade="all, delete-orphan", passive_deletes=True)


class MovieGenre(Base):
    __tablename__ = "movie_genres"
    __table_args__ = (
        UniqueConstraint("movie_id", "genre_id", name="uq_movie_genre"),
        Index("ix_movie_genres_genre_id", "genre_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movie_id: Mapped[int] = mapped_column(ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    genre_id: Mapped[int] = mapped_column(ForeignKey("genres.id", ondelete="CASCADE"), nullable=False)

    movie: Mapped["Movie"] = relationship("Movie", back_populates="genres")
    genre: Mapped["Genre"] = relationship("Genre", back_populates="movies")


class MovieActor(Base):
    __tablename__ = "movie_actors"
    __table_args__ = (
        UniqueConstraint("movie_id", "actor_id", name="uq_movie_actor"),
        Index("ix_movie_actors_actor_id", "actor_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movie_id: Mapped[int] = mapped_column(ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    actor_id: Mapped[int] = mapped_column(ForeignKey("actors.id", ondelete="CASCADE"), nullable=False)
    character: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    billing_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    movie: Mapped["Movie"] = relationship("Movie", back_populates="actors")
    actor: Mapped["Actor"] = relationship("Actor", back_populates="movies")


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("movie_id", "author_id", name="uq_review_movie_author"),
        Index("ix_reviews_movie_created", "movie_id", "created_at"),
        Index("ix_reviews_author_id", "author_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movie_id: Mapped[int] = mapped_column(ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    movie: Mapped["Movie"] = relationship("Movie", back_populates="reviews")
    author: Mapped["User"] = relationship("User", back_populates="reviews")


class MovieRequest(Base):
    __tablename__ = "movie_requests"
    __table_args__ = (
        Index("ix_movie_requests_user_id", "user_id"),
        Index("ix_movie_requests_status", "status"),
        Index("ix_movie_requests_requested_at", "requested_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=REQUEST_PENDING, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="movie_requests")


class RegistrationRequest(Base):
    __tablename__ = "registration_requests"
    __table_args__ = (
        Index("ix_registration_requests_email", "email"),
        Index("ix_registration_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(10), default=REGISTRATION_PENDING, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    admin_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    admin: Mapped[Optional["User"]] = relationship("User")


class AdminAction(Base):
    __tablename__ = "admin_actions"
    __table_args__ = (
        Index("ix_admin_actions_created_at", "created_at"),
        Index("ix_admin_actions_admin_id", "admin_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Nulled when the acting admin is deleted so the entry itself is kept
    admin_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    # Plain integer so the log outlives deleted users
    target_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    admin: Mapped[Optional["User"]] = relationship("User")
