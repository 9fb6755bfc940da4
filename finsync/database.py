"""
FinSync - Development Backend Storage

PURPOSE: SQLite storage behind the local stand-in for the hosted backend
SCOPE: Schema versioning and owner-scoped row operations on JSON documents
DEPENDENCIES: aiosqlite, models.py
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiosqlite

from .models import SERVER_COLUMNS

logger = logging.getLogger(__name__)


def _matches(row: Dict[str, Any], filters: Dict[str, str]) -> bool:
    """Equality filters compare textual forms, the way they arrive in a query string."""
    for column, expected in filters.items():
        value = row.get(column)
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        if value is None or str(value) != expected:
            return False
    return True


def _sort(rows: List[Dict[str, Any]], order: Optional[str]) -> List[Dict[str, Any]]:
    if not order:
        return rows
    column, _, direction = order.partition('.')
    present = [r for r in rows if r.get(column) is not None]
    missing = [r for r in rows if r.get(column) is None]
    present.sort(key=lambda r: r[column], reverse=direction == 'desc')
    return present + missing


class DatabaseManager:
    """Handles all storage operations and migrations for the dev backend."""

    def __init__(self, db_file: str):
        self.db_file = db_file
        self._initialized = False
        self._init_lock: Optional[asyncio.Lock] = None

    async def initialize_database(self) -> None:
        """Initialize SQLite database with proper schema and migrations."""
        async with aiosqlite.connect(self.db_file) as conn:
            await self._setup_schema_versioning(conn)
            current_version = await self._get_current_schema_version(conn)
            logger.info(f"Current database schema version: {current_version}")

            if current_version < 1:
                await self._migrate_to_version_1(conn)

            await conn.commit()
        self._initialized = True

    async def ensure_initialized(self) -> None:
        """Run migrations once, even when the first requests arrive together."""
        if self._initialized:
            return
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if not self._initialized:
                await self.initialize_database()

    async def _setup_schema_versioning(self, conn: aiosqlite.Connection) -> None:
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

    async def _get_current_schema_version(self, conn: aiosqlite.Connection) -> int:
        cursor = await conn.execute('SELECT MAX(version) FROM schema_version')
        result = await cursor.fetchone()
        return result[0] or 0

    async def _migrate_to_version_1(self, conn: aiosqlite.Connection) -> None:
        """Create the document table shared by every entity kind."""
        logger.info("Migrating to schema version 1: Creating records table")
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                table_name TEXT NOT NULL,
                user_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                data TEXT NOT NULL
            )
        ''')
        await conn.execute(
            'CREATE INDEX IF NOT EXISTS records_owner_idx ON records (table_name, user_id)'
        )
        await conn.execute('INSERT INTO schema_version (version) VALUES (1)')
        logger.info("Schema migration to version 1 completed")

    async def _owned_rows(self, conn: aiosqlite.Connection, table: str, user_id: str) -> List[Dict[str, Any]]:
        cursor = await conn.execute(
            'SELECT id, user_id, created_at, data FROM records WHERE table_name = ? AND user_id = ?',
            (table, user_id)
        )
        rows = []
        for record_id, owner, created_at, data in await cursor.fetchall():
            row = json.loads(data)
            row.update({'id': record_id, 'user_id': owner, 'created_at': created_at})
            rows.append(row)
        return rows

    async def select_rows(self, table: str, user_id: str, filters: Dict[str, str],
                          order: Optional[str] = None) -> List[Dict[str, Any]]:
        await self.ensure_initialized()
        async with aiosqlite.connect(self.db_file) as conn:
            rows = await self._owned_rows(conn, table, user_id)
        return _sort([r for r in rows if _matches(r, filters)], order)

    async def insert_row(self, table: str, user_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Store a row, assigning ``id`` and ``created_at``. Returns the stored row."""
        await self.ensure_initialized()
        record_id = str(uuid.uuid4())
        created_at = datetime.now(timezone.utc).isoformat()
        data = {k: v for k, v in row.items() if k not in SERVER_COLUMNS}

        async with aiosqlite.connect(self.db_file) as conn:
            await conn.execute(
                'INSERT INTO records (id, table_name, user_id, created_at, data) VALUES (?, ?, ?, ?, ?)',
                (record_id, table, user_id, created_at, json.dumps(data))
            )
            await conn.commit()

        logger.info(f"Inserted {table} row {record_id} for {user_id}")
        stored = dict(data)
        stored.update({'id': record_id, 'user_id': user_id, 'created_at': created_at})
        return stored

    async def update_rows(self, table: str, user_id: str, filters: Dict[str, str],
                          partial: Dict[str, Any]) -> int:
        await self.ensure_initialized()
        changes = {k: v for k, v in partial.items() if k not in SERVER_COLUMNS}

        async with aiosqlite.connect(self.db_file) as conn:
            targets = [r for r in await self._owned_rows(conn, table, user_id) if _matches(r, filters)]
            for row in targets:
                data = {k: v for k, v in row.items() if k not in SERVER_COLUMNS}
                data.update(changes)
                await conn.execute('UPDATE records SET data = ? WHERE id = ?', (json.dumps(data), row['id']))
            await conn.commit()
        return len(targets)

    async def delete_rows(self, table: str, user_id: str, filters: Dict[str, str]) -> int:
        await self.ensure_initialized()
        async with aiosqlite.connect(self.db_file) as conn:
            targets = [r['id'] for r in await self._owned_rows(conn, table, user_id) if _matches(r, filters)]
            if targets:
                placeholders = ','.join('?' * len(targets))
                await conn.execute(f"DELETE FROM records WHERE id IN ({placeholders})", targets)
                await conn.commit()
        return len(targets)
