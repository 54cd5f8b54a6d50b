# token_admission_bundle/admission/database.py
from __future__ import annotations

import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Optional

import aiosqlite

from token_admission_bundle.common.constants import LOGGER_NAME, db_path

from .errors import DuplicateRecordError
from .models import IngestionRequest

logger = logging.getLogger(LOGGER_NAME)

STATUS_PENDING = "pending"
STATUS_INGESTED = "ingested"


# =========================
# Connection helper
# =========================
class _ConnCtx:
    def __init__(self, path: str):
        self._path = path
        self._db: Optional[aiosqlite.Connection] = None

    async def __aenter__(self) -> aiosqlite.Connection:
        self._db = await aiosqlite.connect(self._path)
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute("PRAGMA busy_timeout=30000;")
        await self._db.execute("PRAGMA synchronous=NORMAL;")
        self._db.row_factory = aiosqlite.Row
        return self._db

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None


def resolve_db_path(cfg: Optional[Dict[str, Any]] = None) -> str:
    raw = os.getenv("TOKEN_DB_PATH") or ((cfg or {}).get("database") or {}).get("path") or db_path()
    p = Path(raw).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    return str(p)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    contract_address  TEXT NOT NULL,
    network           TEXT NOT NULL,
    symbol            TEXT,
    name              TEXT,
    pool_address      TEXT,
    website_url       TEXT,
    whitepaper_url    TEXT,
    market_cap        REAL,
    price_usd         REAL,
    project_id        TEXT,
    status            TEXT NOT NULL DEFAULT 'pending',
    created_at        INTEGER NOT NULL,
    UNIQUE (contract_address, network)
)
"""

_CONTENT_SCHEMA = """
CREATE TABLE IF NOT EXISTS whitepaper_content (
    project_row_id     INTEGER PRIMARY KEY REFERENCES projects(id),
    content            TEXT NOT NULL,
    content_length     INTEGER NOT NULL,
    extraction_method  TEXT NOT NULL,
    extracted_at       INTEGER NOT NULL
)
"""


class ProjectStore:
    """
    Admitted-project records keyed by (contract_address, network).

    The UNIQUE constraint is the source of truth for duplicates; find_by_address
    is only a fast pre-check.

    A 'pending' row is a reservation held while ingestion runs. Rows left
    pending for longer than `pending_ttl_seconds` (a crashed process, a lost
    release) no longer block the key and are reclaimed on init and on lookup.
    """

    def __init__(self, path: str, pending_ttl_seconds: float = 300.0):
        self.path = path
        self.pending_ttl_seconds = pending_ttl_seconds

    def _connect(self) -> _ConnCtx:
        return _ConnCtx(self.path)

    async def init(self) -> None:
        async with self._connect() as db:
            await db.execute(_SCHEMA)
            await db.execute(_CONTENT_SCHEMA)
            await db.execute("CREATE INDEX IF NOT EXISTS idx_projects_symbol ON projects(symbol)")
            await db.commit()
        reclaimed = await self.reclaim_stale_pending()
        if reclaimed:
            logger.warning("Reclaimed %d stale pending reservation(s)", reclaimed)
        logger.debug("Project store ready at %s", self.path)

    async def reclaim_stale_pending(
        self,
        contract_address: Optional[str] = None,
        network: Optional[str] = None,
    ) -> int:
        """Delete pending rows older than the TTL, optionally only for one (address, network)."""
        cutoff = int(time.time() - self.pending_ttl_seconds)
        sql = "DELETE FROM projects WHERE status = ? AND created_at <= ?"
        params: list = [STATUS_PENDING, cutoff]
        if contract_address is not None and network is not None:
            sql += " AND contract_address = ? AND network = ?"
            params += [contract_address, network]
        async with self._connect() as db:
            cur = await db.execute(sql, params)
            await db.commit()
            return int(cur.rowcount or 0)

    async def find_by_address(self, contract_address: str, network: str) -> Optional[Dict[str, Any]]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT * FROM projects WHERE contract_address = ? AND network = ?",
                (contract_address, network),
            ) as cur:
                row = await cur.fetchone()
        return dict(row) if row else None

    async def find_by_symbol(self, symbol: str) -> Optional[Dict[str, Any]]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT * FROM projects WHERE UPPER(symbol) = ? ORDER BY id LIMIT 1",
                ((symbol or "").upper(),),
            ) as cur:
                row = await cur.fetchone()
        return dict(row) if row else None

    async def insert_if_absent(self, request: IngestionRequest) -> int:
        """Reserve the (address, network) key. Raises DuplicateRecordError when taken."""
        try:
            async with self._connect() as db:
                cur = await db.execute(
                    """
                    INSERT INTO projects (
                        contract_address, network, symbol, name, pool_address,
                        website_url, whitepaper_url, market_cap, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        request.contract_address,
                        request.network,
                        request.symbol,
                        request.name,
                        request.pool_address,
                        request.website_url,
                        request.whitepaper_url,
                        request.market_cap,
                        STATUS_PENDING,
                        int(time.time()),
                    ),
                )
                await db.commit()
                return int(cur.lastrowid)
        except sqlite3.IntegrityError as e:
            logger.info("Uniqueness constraint rejected (%s, %s): %s", request.contract_address, request.network, e)
            raise DuplicateRecordError(request.contract_address, request.network) from e

    async def mark_ingested(
        self,
        row_id: int,
        project_id: Any,
        market_cap: Optional[float] = None,
        price_usd: Optional[float] = None,
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                """
                UPDATE projects
                   SET project_id = ?, status = ?,
                       market_cap = COALESCE(?, market_cap),
                       price_usd = ?
                 WHERE id = ?
                """,
                (None if project_id is None else str(project_id), STATUS_INGESTED, market_cap, price_usd, row_id),
            )
            await db.commit()

    async def release(self, row_id: int) -> None:
        """Drop a pending reservation (ingestion failed, nothing was created downstream)."""
        async with self._connect() as db:
            await db.execute("DELETE FROM projects WHERE id = ? AND status = ?", (row_id, STATUS_PENDING))
            await db.commit()

    async def attach_whitepaper(self, row_id: int, whitepaper_url: str) -> None:
        async with self._connect() as db:
            await db.execute("UPDATE projects SET whitepaper_url = ? WHERE id = ?", (whitepaper_url, row_id))
            await db.commit()

    async def save_whitepaper_content(self, row_id: int, content: str, method: str = "manual_paste") -> None:
        """Upsert pasted whitepaper text for a project; one document per project."""
        async with self._connect() as db:
            await db.execute(
                """
                INSERT INTO whitepaper_content (project_row_id, content, content_length, extraction_method, extracted_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(project_row_id) DO UPDATE SET
                    content = excluded.content,
                    content_length = excluded.content_length,
                    extraction_method = excluded.extraction_method,
                    extracted_at = excluded.extracted_at
                """,
                (row_id, content, len(content), method, int(time.time())),
            )
            await db.commit()

    async def get_whitepaper_content(self, row_id: int) -> Optional[Dict[str, Any]]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT * FROM whitepaper_content WHERE project_row_id = ?", (row_id,)
            ) as cur:
                row = await cur.fetchone()
        return dict(row) if row else None


def record_identifier(row: Dict[str, Any]) -> Any:
    """The id callers should link to: downstream project id once ingested, else the local row id."""
    return row.get("project_id") or row.get("id")
