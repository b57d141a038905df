"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and RefreshTokenStore are the repositories; _row_to_user /
_row_to_refresh_token are the mappers. Route and service code never touches
SQL directly.

Connection model:
  create_store_engine() builds ONE engine (and its bounded connection pool)
  per process. The app lifespan creates it and hands it to both stores.
  Every store method checks a connection out with `with engine.connect()`
  for exactly one statement and returns it to the pool on exit.

  Every mutation is a single statement (insert one row, delete one row by
  token, delete all rows matching a predicate). There are no cross-row
  invariants, so no multi-statement transactions are needed and the sweep
  can run concurrently with login/logout.

Timestamps:
  Stored as fixed-width ISO-8601 UTC text ("2025-01-01T00:00:00.000000Z").
  Fixed width + single timezone means SQL string comparison orders them
  chronologically on every backend.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, client/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import RefreshToken, User

logger = logging.getLogger("tokengate.auth")

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", String(60), nullable=False),  # bcrypt output is 60 chars
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    # No UNIQUE on user_id: one row per session, many sessions per user.
    Column("token", Text, nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON is what makes the
    ON DELETE CASCADE on refresh_tokens.user_id take effect.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_store_engine(db_url: str, pool_size: int = 10) -> Engine:
    """Create the shared engine and make sure the schema exists.

    db_url is always passed in, normally Settings.database_url.
    SQLite gets check_same_thread=False because FastAPI runs sync handlers
    in a thread pool. Server databases get a bounded pool with pre-ping so
    connections dropped by the DB are replaced transparently.
    """
    if db_url.startswith("sqlite"):
        engine = create_engine(db_url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _set_sqlite_pragmas)
    else:
        engine = create_engine(db_url, pool_size=pool_size, pool_pre_ping=True)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_ts(moment: datetime) -> str:
    """Render a datetime in the store's fixed-width UTC text format."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _now_ts() -> str:
    return format_ts(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        engine = create_store_engine("sqlite:///auth.db")
        users = UserStore(engine)
        uid = users.create_user(User(username="alice", hashed_password=hash_password("pw")))
        user = users.get_by_username("alice")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        register_user() turns that into a ConflictError so that two concurrent
        registrations for the same name cannot both succeed.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    created_at=_now_ts(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def ping(self) -> bool:
        """Return True if the database answers a trivial query.

        Used by the health endpoint. Any failure (pool exhausted, DB down)
        reads as unhealthy; the caller decides what to report.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True


class RefreshTokenStore:
    """Repository for persisted refresh tokens.

    A row is created at login, looked up on every refresh, deleted at logout,
    and eventually removed by the expiry sweep. `now` parameters exist so
    tests can pin the clock; production callers leave them as None.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def insert(self, user_id: int, token: str, expires_at: datetime) -> int:
        """Append a row for a newly issued refresh token and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    user_id=user_id,
                    token=token,
                    expires_at=format_ts(expires_at),
                    created_at=_now_ts(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_valid(self, token: str, now: datetime | None = None) -> RefreshToken | None:
        """Return the row for token if it exists and expires strictly after now."""
        cutoff = format_ts(now or datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            row = conn.execute(
                _refresh_tokens.select()
                .where((_refresh_tokens.c.token == token) & (_refresh_tokens.c.expires_at > cutoff))
                .limit(1)
            ).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete_by_token(self, token: str) -> int:
        """Delete the row(s) holding token. Returns the count; 0 is not an error."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
            conn.commit()
        return result.rowcount

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete every row with expires_at <= now. Returns number of rows removed.

        The predicate is the exact complement of find_valid(): a row is either
        still findable or eligible for the sweep, never both.
        """
        cutoff = format_ts(now or datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount

    def count_for_user(self, user_id: int) -> int:
        """Return how many refresh tokens (valid or not yet swept) a user holds."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.user_id == user_id)
            ).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
