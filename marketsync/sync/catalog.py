"""Catalog store for synced seller accounts and listings.

SQLite-backed storage of marketplace accounts, per-account sync state and
the listings, tags and daily stats written by the sync orchestrator. Every
write is an upsert keyed by the natural composite key of its table, so
re-running a sync never duplicates rows.
"""

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Protocol

from ..models import (
    AccountStatus,
    ListingRecord,
    ListingStatRecord,
    ListingTagRecord,
    MarketplaceAccount,
    SyncState,
    SyncStatus,
)

logger = logging.getLogger(__name__)

COUNTABLE_TABLES = frozenset(
    {
        "data_providers",
        "marketplace_accounts",
        "provider_sync_states",
        "listings",
        "listing_tags",
        "listing_stats",
    }
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS data_providers (
    id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    provider_type TEXT NOT NULL,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    max_freshness_seconds INTEGER
);

CREATE TABLE IF NOT EXISTS marketplace_accounts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    provider_id TEXT NOT NULL,
    external_shop_id TEXT NOT NULL,
    shop_name TEXT,
    access_token TEXT,
    refresh_token TEXT,
    token_expires_at TEXT,
    scopes TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'active',
    last_synced_at TEXT,
    UNIQUE (provider_id, external_shop_id)
);

CREATE TABLE IF NOT EXISTS provider_sync_states (
    account_id TEXT NOT NULL,
    sync_type TEXT NOT NULL,
    cursor TEXT,
    last_run_at TEXT,
    next_run_at TEXT,
    status TEXT NOT NULL,
    message TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    PRIMARY KEY (account_id, sync_type)
);

CREATE TABLE IF NOT EXISTS listings (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    external_id TEXT NOT NULL,
    title TEXT,
    description TEXT,
    state TEXT,
    url TEXT,
    price_cents INTEGER,
    currency TEXT,
    quantity INTEGER,
    materials TEXT NOT NULL DEFAULT '[]',
    last_modified_at TEXT,
    raw TEXT NOT NULL DEFAULT '{}',
    updated_at TEXT NOT NULL,
    UNIQUE (account_id, external_id)
);

CREATE TABLE IF NOT EXISTS listing_tags (
    listing_id TEXT NOT NULL,
    tag TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'seller',
    PRIMARY KEY (listing_id, tag)
);

CREATE TABLE IF NOT EXISTS listing_stats (
    listing_id TEXT NOT NULL,
    recorded_on TEXT NOT NULL,
    views INTEGER,
    favorites INTEGER,
    PRIMARY KEY (listing_id, recorded_on)
);

CREATE INDEX IF NOT EXISTS idx_accounts_user ON marketplace_accounts(user_id);
"""


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class CatalogStore(Protocol):
    """Persistence operations used by the sync orchestrator."""

    def ensure_provider(self, provider_id: str = "etsy", display_name: str = "Etsy Marketplace") -> None: ...

    def upsert_account(self, account: MarketplaceAccount) -> MarketplaceAccount: ...

    def get_account(self, account_id: str) -> MarketplaceAccount | None: ...

    def list_accounts(self, user_id: str | None = None, provider_id: str = "etsy") -> list[MarketplaceAccount]: ...

    def update_account_tokens(
        self, account_id: str, access_token: str, refresh_token: str | None, expires_at: datetime
    ) -> None: ...

    def mark_synced(self, account_id: str, synced_at: datetime) -> None: ...

    def upsert_listings(self, account_id: str, records: list[ListingRecord]) -> dict[str, str]: ...

    def upsert_listing_tags(self, records: list[ListingTagRecord]) -> int: ...

    def upsert_listing_stats(self, records: list[ListingStatRecord]) -> int: ...

    def get_sync_state(self, account_id: str, sync_type: str) -> SyncState | None: ...

    def upsert_sync_state(self, state: SyncState) -> None: ...


class SqliteCatalogStore:
    """SQLite implementation of CatalogStore.

    Attributes:
        db_path: Path to SQLite database file.
    """

    def __init__(self, db_path: str = "data/catalog.db"):
        """Initialize the store and create tables if needed.

        Args:
            db_path: Path to SQLite database file.
        """
        self.db_path = db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        logger.info(f"Catalog store initialized with database: {db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Connection scoped to one transaction, committed on success."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_database(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    def ensure_provider(self, provider_id: str = "etsy", display_name: str = "Etsy Marketplace") -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO data_providers (id, display_name, provider_type, is_enabled, max_freshness_seconds)
                VALUES (?, ?, 'marketplace', 1, ?)
                ON CONFLICT(id) DO UPDATE SET display_name = excluded.display_name, is_enabled = 1
                """,
                (provider_id, display_name, 6 * 60 * 60),
            )

    @staticmethod
    def _account_from_row(row: sqlite3.Row) -> MarketplaceAccount:
        return MarketplaceAccount(
            id=row["id"],
            user_id=row["user_id"],
            provider_id=row["provider_id"],
            external_shop_id=row["external_shop_id"],
            shop_name=row["shop_name"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expires_at=_parse_dt(row["token_expires_at"]),
            scopes=json.loads(row["scopes"] or "[]"),
            status=AccountStatus(row["status"]),
            last_synced_at=_parse_dt(row["last_synced_at"]),
        )

    def upsert_account(self, account: MarketplaceAccount) -> MarketplaceAccount:
        """Insert or update an account keyed by (provider_id, external_shop_id).

        Returns:
            The stored account, keeping the existing row id on update.
        """
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO marketplace_accounts (
                    id, user_id, provider_id, external_shop_id, shop_name, access_token,
                    refresh_token, token_expires_at, scopes, status, last_synced_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(provider_id, external_shop_id) DO UPDATE SET
                    user_id = excluded.user_id,
                    shop_name = excluded.shop_name,
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    token_expires_at = excluded.token_expires_at,
                    scopes = excluded.scopes,
                    status = excluded.status
                """,
                (
                    account.id,
                    account.user_id,
                    account.provider_id,
                    account.external_shop_id,
                    account.shop_name,
                    account.access_token,
                    account.refresh_token,
                    _iso(account.token_expires_at),
                    json.dumps(account.scopes),
                    account.status.value,
                    _iso(account.last_synced_at),
                ),
            )
            row = conn.execute(
                "SELECT * FROM marketplace_accounts WHERE provider_id = ? AND external_shop_id = ?",
                (account.provider_id, account.external_shop_id),
            ).fetchone()
        return self._account_from_row(row)

    def get_account(self, account_id: str) -> MarketplaceAccount | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM marketplace_accounts WHERE id = ?", (account_id,)).fetchone()
        return self._account_from_row(row) if row else None

    def list_accounts(self, user_id: str | None = None, provider_id: str = "etsy") -> list[MarketplaceAccount]:
        """Active accounts of a provider, optionally restricted to one user."""
        query = "SELECT * FROM marketplace_accounts WHERE provider_id = ? AND status = 'active'"
        params: list[Any] = [provider_id]
        if user_id:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY external_shop_id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._account_from_row(row) for row in rows]

    def update_account_tokens(
        self, account_id: str, access_token: str, refresh_token: str | None, expires_at: datetime
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE marketplace_accounts
                SET access_token = ?, refresh_token = COALESCE(?, refresh_token), token_expires_at = ?
                WHERE id = ?
                """,
                (access_token, refresh_token, _iso(expires_at), account_id),
            )

    def mark_synced(self, account_id: str, synced_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE marketplace_accounts SET last_synced_at = ? WHERE id = ?",
                (_iso(synced_at), account_id),
            )

    def upsert_listings(self, account_id: str, records: list[ListingRecord]) -> dict[str, str]:
        """Upsert one page of listings in a single transaction.

        Returns:
            Mapping of external listing id to catalog row id.
        """
        if not records:
            return {}

        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO listings (
                    id, account_id, external_id, title, description, state, url, price_cents,
                    currency, quantity, materials, last_modified_at, raw, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, external_id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    state = excluded.state,
                    url = excluded.url,
                    price_cents = excluded.price_cents,
                    currency = excluded.currency,
                    quantity = excluded.quantity,
                    materials = excluded.materials,
                    last_modified_at = excluded.last_modified_at,
                    raw = excluded.raw,
                    updated_at = excluded.updated_at
                """,
                [
                    (
                        str(uuid.uuid4()),
                        account_id,
                        record.external_id,
                        record.title,
                        record.description,
                        record.state,
                        record.url,
                        record.price_cents,
                        record.currency,
                        record.quantity,
                        json.dumps(record.materials),
                        _iso(record.last_modified_at),
                        json.dumps(record.raw, default=str),
                        now,
                    )
                    for record in records
                ],
            )
            placeholders = ",".join("?" for _ in records)
            rows = conn.execute(
                f"SELECT id, external_id FROM listings WHERE account_id = ? AND external_id IN ({placeholders})",
                [account_id, *(record.external_id for record in records)],
            ).fetchall()
        return {row["external_id"]: row["id"] for row in rows}

    def upsert_listing_tags(self, records: list[ListingTagRecord]) -> int:
        if not records:
            return 0
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO listing_tags (listing_id, tag, source) VALUES (?, ?, 'seller')
                ON CONFLICT(listing_id, tag) DO UPDATE SET source = excluded.source
                """,
                [(record.listing_id, record.tag) for record in records],
            )
        return len(records)

    def upsert_listing_stats(self, records: list[ListingStatRecord]) -> int:
        if not records:
            return 0
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO listing_stats (listing_id, recorded_on, views, favorites) VALUES (?, ?, ?, ?)
                ON CONFLICT(listing_id, recorded_on) DO UPDATE SET
                    views = excluded.views,
                    favorites = excluded.favorites
                """,
                [(record.listing_id, record.recorded_on.isoformat(), record.views, record.favorites) for record in records],
            )
        return len(records)

    def get_sync_state(self, account_id: str, sync_type: str) -> SyncState | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM provider_sync_states WHERE account_id = ? AND sync_type = ?",
                (account_id, sync_type),
            ).fetchone()
        if row is None:
            return None
        return SyncState(
            account_id=row["account_id"],
            sync_type=row["sync_type"],
            cursor=row["cursor"],
            last_run_at=_parse_dt(row["last_run_at"]),
            next_run_at=_parse_dt(row["next_run_at"]),
            status=SyncStatus(row["status"]),
            message=row["message"],
            metadata=json.loads(row["metadata"] or "{}"),
        )

    def upsert_sync_state(self, state: SyncState) -> None:
        """Overwrite the (account, sync type) row with the latest run outcome."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO provider_sync_states (
                    account_id, sync_type, cursor, last_run_at, next_run_at, status, message, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, sync_type) DO UPDATE SET
                    cursor = excluded.cursor,
                    last_run_at = excluded.last_run_at,
                    next_run_at = excluded.next_run_at,
                    status = excluded.status,
                    message = excluded.message,
                    metadata = excluded.metadata
                """,
                (
                    state.account_id,
                    state.sync_type,
                    state.cursor,
                    _iso(state.last_run_at),
                    _iso(state.next_run_at),
                    state.status.value,
                    state.message,
                    json.dumps(state.metadata, default=str),
                ),
            )

    def count_rows(self, table: str) -> int:
        """Row count of a catalog table, for diagnostics and tests."""
        if table not in COUNTABLE_TABLES:
            raise ValueError(f"Unknown catalog table: {table}")
        with self._connect() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
