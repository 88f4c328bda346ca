"""Initial schema creation

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00

Creates the catalog and account tables, aligned with
cinescan/models/database.py:
- users
- movies, genres, actors and their link tables
- reviews
- movie_requests
- admin_actions
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=10), nullable=False, server_default="USER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.sql.expression.true()),
        *_timestamps(),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_created_at", "users", ["created_at"], unique=False)
    op.create_index("ix_users_last_login_at", "users", ["last_login_at"], unique=False)

    # movies
    op.create_table(
        "movies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tmdb_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("synopsis", sa.Text(), nullable=True),
        sa.Column("poster_url", sa.String(length=500), nullable=True),
        sa.Column("trailer_url", sa.String(length=500), nullable=True),
        sa.Column("release_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("is_weekly_suggestion", sa.Boolean(), nullable=False, server_default=sa.sql.expression.false()),
        sa.Column("local_path", sa.String(length=1024), nullable=True),
        sa.Column("filename", sa.String(length=512), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("resolution", sa.String(length=20), nullable=True),
        sa.Column("codec", sa.String(length=20), nullable=True),
        sa.Column("container", sa.String(length=10), nullable=True),
        sa.Column("last_scanned", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tmdb_id", name="uq_movies_tmdb_id"),
        sa.UniqueConstraint("local_path", name="uq_movies_local_path"),
    )
    op.create_index("ix_movies_created_at", "movies", ["created_at"], unique=False)
    op.create_index("ix_movies_title", "movies", ["title"], unique=False)
    op.create_index("ix_movies_weekly", "movies", ["is_weekly_suggestion"], unique=False)

    # genres / actors
    op.create_table(
        "genres",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.UniqueConstraint("name", name="uq_genres_name"),
    )
    op.create_table(
        "actors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.UniqueConstraint("name", name="uq_actors_name"),
    )

    # link tables
    op.create_table(
        "movie_genres",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("movie_id", sa.Integer(), sa.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("genre_id", sa.Integer(), sa.ForeignKey("genres.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("movie_id", "genre_id", name="uq_movie_genre"),
    )
    op.create_index("ix_movie_genres_genre_id", "movie_genres", ["genre_id"], unique=False)
    op.create_table(
        "movie_actors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("movie_id", sa.Integer(), sa.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("actors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("character", sa.String(length=200), nullable=True),
        sa.Column("billing_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("movie_id", "actor_id", name="uq_movie_actor"),
    )
    op.create_index("ix_movie_actors_actor_id", "movie_actors", ["actor_id"], unique=False)

    # reviews
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("movie_id", sa.Integer(), sa.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("movie_id", "author_id", name="uq_review_movie_author"),
    )
    op.create_index("ix_reviews_movie_created", "reviews", ["movie_id", "created_at"], unique=False)
    op.create_index("ix_reviews_author_id", "reviews", ["author_id"], unique=False)

    # movie requests
    op.create_table(
        "movie_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("comment", sa.String(length=500), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_movie_requests_user_id", "movie_requests", ["user_id"], unique=False)
    op.create_index("ix_movie_requests_status", "movie_requests", ["status"], unique=False)
    op.create_index("ix_movie_requests_requested_at", "movie_requests", ["requested_at"], unique=False)

    # admin audit log
    op.create_table(
        "admin_actions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(length=30), nullable=False),
        sa.Column("target_user_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_admin_actions_created_at", "admin_actions", ["created_at"], unique=False)
    op.create_index("ix_admin_actions_admin_id", "admin_actions", ["admin_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_admin_actions_admin_id", table_name="admin_actions")
    op.drop_index("ix_admin_actions_created_at", table_name="admin_actions")
    op.drop_table("admin_actions")

    op.drop_index("ix_movie_requests_requested_at", table_name="movie_requests")
    op.drop_index("ix_movie_requests_status", table_name="movie_requests")
    op.drop_index("ix_movie_requests_user_id", table_name="movie_requests")
    op.drop_table("movie_requests")

    op.drop_index("ix_reviews_author_id", table_name="reviews")
    op.drop_index("ix_reviews_movie_created", table_name="reviews")
    op.drop_table("reviews")

    op.drop_index("ix_movie_actors_actor_id", table_name="movie_actors")
    op.drop_table("movie_actors")
    op.drop_index("ix_movie_genres_genre_id", table_name="movie_genres")
    op.drop_table("movie_genres")
    op.drop_table("actors")
    op.drop_table("genres")

    op.drop_index("ix_movies_weekly", table_name="movies")
    op.drop_index("ix_movies_title", table_name="movies")
    op.drop_index("ix_movies_created_at", table_name="movies")
    op.drop_table("movies")

    op.drop_index("ix_users_last_login_at", table_name="users")
    op.drop_index("ix_users_created_at", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
