"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_account is the mapper. Services never touch SQL directly.

Contract:
  Lookups return None when nothing matches -- absence is not an error.
  Unique violations surface as DuplicateEmail / DuplicateUsername. Which one
  is decided by re-querying after the failed write, never by reading the
  driver's error text. Any other SQLAlchemyError is logged here and re-raised
  as StorageFailure with the driver error chained, so no raw driver message
  reaches a client.

Schema:
  accounts          -- UNIQUE(username), UNIQUE(email)
  linked_providers  -- UNIQUE(provider, external_id): one local account per
                       external identity; UNIQUE(account_id, provider): one
                       slot per provider on an account.

Emails are stored and compared lower-cased.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    exists,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import AuthError, DuplicateEmail, DuplicateUsername, StorageFailure
from auth.models import Account, LinkedProvider, Provider

logger = logging.getLogger("threadsauth.auth.store")

_DEFAULT_DB_URL = "sqlite:///threadsauth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("display_name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False, server_default=""),  # "" for OAuth-only accounts
    Column("bio", Text),
    Column("profile_image_url", Text),
    Column("created_at", String(32), nullable=False),
)

_linked_providers = Table(
    "linked_providers",
    _metadata,
    Column("account_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("provider", String(30), nullable=False),
    Column("external_id", String(255), nullable=False),
    Column("external_email", String(255), nullable=False, server_default=""),
    UniqueConstraint("provider", "external_id", name="uq_provider_external_id"),
    UniqueConstraint("account_id", "provider", name="uq_account_provider"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _norm_email(email: str) -> str:
    return email.strip().lower()


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into StorageFailure; let domain errors through."""
    try:
        yield
    except AuthError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s", operation, exc_info=True)
        raise StorageFailure() from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Account entities and their linked providers.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        created = store.create_account(Account(username="jane", display_name="Jane", email="jane@example.com"))
        store.get_by_email("jane@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        """Insert account (and its provider links) and return the stored record.

        A fresh UUID is assigned when account.id is None. Both tables are
        written in one transaction.

        Raises DuplicateEmail / DuplicateUsername if the write hits a unique
        constraint -- this is authoritative even if the caller pre-checked.
        """
        account_id = account.id or str(uuid.uuid4())
        email = _norm_email(account.email)
        with _storage_errors("create_account"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(
                        _accounts.insert().values(
                            id=account_id,
                            username=account.username,
                            display_name=account.display_name,
                            email=email,
                            password_hash=account.password_hash or "",
                            bio=account.bio,
                            profile_image_url=account.profile_image_url,
                            created_at=_now_iso(),
                        )
                    )
                    self._insert_providers(conn, account_id, account.providers)
            except IntegrityError as exc:
                raise self._classify_conflict(email, account.username) from exc
            created = self.get_by_id(account_id)
        if created is None:
            raise StorageFailure()
        logger.info("Account created (id=%s, providers=%s)", account_id, sorted(p.value for p in account.providers))
        return created

    def update_profile(
        self,
        account_id: str,
        display_name: str | None = None,
        bio: str | None = None,
        profile_image_url: str | None = None,
    ) -> Account | None:
        """Update the provided profile fields; None keeps the stored value.

        Returns the updated account, or None if account_id does not exist.
        """
        values = {
            key: value
            for key, value in (
                ("display_name", display_name),
                ("bio", bio),
                ("profile_image_url", profile_image_url),
            )
            if value is not None
        }
        with _storage_errors("update_profile"):
            if values:
                with self.engine.begin() as conn:
                    result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**values))
                if result.rowcount == 0:
                    return None
            return self.get_by_id(account_id)

    def update_providers(self, account_id: str, providers: dict[Provider, LinkedProvider]) -> Account | None:
        """Replace the account's linked providers with exactly `providers`.

        Callers that want to add one provider pass the existing map plus the
        new entry. Returns the updated account, or None if it does not exist.
        An external identity already held by another account raises
        StorageFailure.
        """
        with _storage_errors("update_providers"):
            try:
                with self.engine.begin() as conn:
                    found = conn.execute(select(_accounts.c.id).where(_accounts.c.id == account_id)).first()
                    if found is None:
                        return None
                    conn.execute(_linked_providers.delete().where(_linked_providers.c.account_id == account_id))
                    self._insert_providers(conn, account_id, providers)
            except IntegrityError as exc:
                logger.warning("Provider link for account %s conflicts with another account", account_id)
                raise StorageFailure() from exc
            return self.get_by_id(account_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        return self._get_one(_accounts.c.id == account_id, "get_by_id")

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email (case-insensitive). Returns None if not found."""
        return self._get_one(_accounts.c.email == _norm_email(email), "get_by_email")

    def get_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive). Returns None if not found."""
        return self._get_one(_accounts.c.username == username, "get_by_username")

    def get_by_provider(self, provider: Provider, external_id: str) -> Account | None:
        """Look up the account holding (provider, external_id). Returns None if unlinked."""
        with _storage_errors("get_by_provider"):
            with self.engine.connect() as conn:
                account_id = conn.execute(
                    select(_linked_providers.c.account_id).where(
                        (_linked_providers.c.provider == Provider(provider).value)
                        & (_linked_providers.c.external_id == external_id)
                    )
                ).scalar()
                if account_id is None:
                    return None
                row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
                return self._map(conn, row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        return self._exists(_accounts.c.email == _norm_email(email), "email_exists")

    def username_exists(self, username: str) -> bool:
        return self._exists(_accounts.c.username == username, "username_exists")

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_one(self, clause, operation: str) -> Account | None:
        with _storage_errors(operation):
            with self.engine.connect() as conn:
                row = conn.execute(_accounts.select().where(clause)).fetchone()
                return self._map(conn, row) if row is not None else None

    def _exists(self, clause, operation: str) -> bool:
        with _storage_errors(operation):
            with self.engine.connect() as conn:
                return bool(conn.execute(select(exists().where(clause))).scalar())

    def _map(self, conn: Connection, row) -> Account:
        link_rows = conn.execute(
            _linked_providers.select().where(_linked_providers.c.account_id == row.id)
        ).fetchall()
        return _row_to_account(row, link_rows)

    def _insert_providers(self, conn: Connection, account_id: str, providers: dict[Provider, LinkedProvider]) -> None:
        if not providers:
            return
        conn.execute(
            _linked_providers.insert(),
            [
                {
                    "account_id": account_id,
                    "provider": Provider(provider).value,
                    "external_id": link.external_id,
                    "external_email": _norm_email(link.external_email),
                }
                for provider, link in providers.items()
            ],
        )

    def _classify_conflict(self, email: str, username: str) -> AuthError:
        """Decide which unique constraint a failed write hit by re-querying."""
        if self.email_exists(email):
            return DuplicateEmail()
        if self.username_exists(username):
            return DuplicateUsername()
        logger.warning("Account write conflicted on a provider link")
        return StorageFailure()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row, link_rows) -> Account:
    providers: dict[Provider, LinkedProvider] = {}
    for link in link_rows:
        try:
            provider = Provider(link.provider)
        except ValueError:
            # A provider that has since been removed from the enum.
            logger.warning("Ignoring unknown provider %r on account %s", link.provider, row.id)
            continue
        providers[provider] = LinkedProvider(external_id=link.external_id, external_email=link.external_email)
    return Account(
        id=row.id,
        username=row.username,
        display_name=row.display_name,
        email=row.email,
        password_hash=row.password_hash or "",
        bio=row.bio,
        profile_image_url=row.profile_image_url,
        providers=providers,
        created_at=row.created_at,
    )
