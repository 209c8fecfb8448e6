"""SQLite-backed storage implementation for pykairos.

Design Pattern: Adapter Pattern
SqliteRunRegistry adapts an SQLite database to the RunRegistry interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- JSON columns for input, checkpoint, result and hook payloads
- INTEGER timestamps (milliseconds, UTC)
- Compare-and-set UPDATEs for hook transitions (rowcount decides the winner)
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from pykairos.models import Checkpoint, Hook, HookState, RunStatus, WorkflowRun, utcnow
from pykairos.storage.base import RunRegistry, StorageError


def _to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _from_millis(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=UTC)


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Value is not JSON-serializable: {e}") from e


def _loads(value: str | None) -> Any:
    return json.loads(value) if value is not None else None


class SqliteRunRegistry(RunRegistry):
    """SQLite-backed durable storage.

    After __init__, the instance is not yet usable. Call connect() first.

    Usage:
        registry = SqliteRunRegistry("runs.db")
        await registry.connect()
        try:
            runtime = Runtime(registry)
            ...
        finally:
            await registry.close()
    """

    def __init__(self, db_path: str):
        """Initialize storage (connection not opened yet).

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection

    @classmethod
    async def in_memory(cls) -> SqliteRunRegistry:
        """
        Create an in-memory SQLite registry for testing.

        Returns:
            Connected in-memory registry instance
        """
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteRunRegistry(in-memory)"
        return f"SqliteRunRegistry({self.db_path})"

    async def connect(self) -> None:
        """Open database connection and initialize schema."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,  # Autocommit mode
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()

        if result:
            mode = result[0].upper()
            if mode not in ("WAL", "MEMORY"):
                raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._create_schema()
        await self._connection.commit()

    async def _create_schema(self) -> None:
        """Create database tables and indexes.

        Schema design:
        - runs: one row per run, checkpoint stored as a JSON document
        - hooks: one row per hook token, UPPERCASE state values
        """
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                status TEXT CHECK( status IN (
                    'PENDING','RUNNING','SUSPENDED','COMPLETED','FAILED'
                ) ) NOT NULL,
                input TEXT,
                checkpoint TEXT NOT NULL,
                result TEXT,
                error TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_runs_status
            ON runs(status, created_at)
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS hooks (
                token TEXT PRIMARY KEY,
                run_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                stage TEXT NOT NULL,
                state TEXT CHECK( state IN ('PENDING','RESOLVED','EXPIRED') ) NOT NULL,
                payload TEXT,
                expires_at INTEGER,
                created_at INTEGER NOT NULL,
                settled_at INTEGER
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_hooks_run
            ON hooks(run_id)
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_hooks_pending
            ON hooks(state, expires_at)
        """)

    # ========================================================================
    # Runs
    # ========================================================================

    async def create_run(self, run: WorkflowRun) -> None:
        self._check_connected()

        async with self._lock:
            try:
                await self._connection.execute(
                    """
                    INSERT INTO runs (
                        run_id, workflow_name, status, input, checkpoint,
                        result, error, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        run.run_id,
                        run.workflow_name,
                        run.status.value,
                        _dumps(run.input),
                        _dumps(run.checkpoint.to_dict()),
                        _dumps(run.result),
                        run.error,
                        _to_millis(run.created_at),
                        _to_millis(run.updated_at),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                raise StorageError(f"Run already exists: {run.run_id}") from e
            await self._connection.commit()

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        self._check_connected()

        async with self._connection.execute(
            f"SELECT {self._RUN_COLUMNS} FROM runs WHERE run_id = ?", (run_id,)
        ) as cursor:
            row = await cursor.fetchone()

        return self._row_to_run(row) if row else None

    async def save_run(self, run: WorkflowRun) -> None:
        self._check_connected()

        run.touch()
        async with self._lock:
            cursor = await self._connection.execute(
                """
                UPDATE runs
                SET status = ?, checkpoint = ?, result = ?, error = ?, updated_at = ?
                WHERE run_id = ?
                """,
                (
                    run.status.value,
                    _dumps(run.checkpoint.to_dict()),
                    _dumps(run.result),
                    run.error,
                    _to_millis(run.updated_at),
                    run.run_id,
                ),
            )
            await self._connection.commit()

        if cursor.rowcount == 0:
            raise StorageError(f"Run not found: {run.run_id}")

    async def list_runs(self, status: RunStatus | None = None) -> list[WorkflowRun]:
        self._check_connected()

        if status is None:
            query = f"SELECT {self._RUN_COLUMNS} FROM runs ORDER BY created_at, rowid"
            params: tuple = ()
        else:
            query = (
                f"SELECT {self._RUN_COLUMNS} FROM runs WHERE status = ? ORDER BY created_at, rowid"
            )
            params = (status.value,)

        async with self._connection.execute(query, params) as cursor:
            rows = await cursor.fetchall()

        return [self._row_to_run(row) for row in rows]

    # ========================================================================
    # Hooks
    # ========================================================================

    async def create_hook(self, hook: Hook) -> Hook:
        self._check_connected()

        async with self._lock:
            # INSERT OR IGNORE keeps the first deadline when a stage is replayed
            await self._connection.execute(
                """
                INSERT OR IGNORE INTO hooks (
                    token, run_id, kind, stage, state, payload,
                    expires_at, created_at, settled_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    hook.token,
                    hook.run_id,
                    hook.kind,
                    hook.stage,
                    hook.state.value,
                    _dumps(hook.payload),
                    _to_millis(hook.expires_at),
                    _to_millis(hook.created_at),
                    _to_millis(hook.settled_at),
                ),
            )
            await self._connection.commit()

        stored = await self.get_hook(hook.token)
        if stored is None:
            raise StorageError(f"Failed to store hook: {hook.token}")
        if stored.run_id != hook.run_id:
            raise StorageError(f"Hook token {hook.token} already belongs to run {stored.run_id}")
        return stored

    async def get_hook(self, token: str) -> Hook | None:
        self._check_connected()

        async with self._connection.execute(
            f"SELECT {self._HOOK_COLUMNS} FROM hooks WHERE token = ?", (token,)
        ) as cursor:
            row = await cursor.fetchone()

        return self._row_to_hook(row) if row else None

    async def resolve_hook(
        self, token: str, payload: dict[str, Any], now: datetime | None = None
    ) -> Hook | None:
        """Resolve a hook (optimistic concurrency).

        Only one caller's UPDATE matches the PENDING row; the others see
        rowcount 0 and lose.
        """
        self._check_connected()

        now_millis = _to_millis(now or utcnow())

        async with self._lock:
            cursor = await self._connection.execute(
                """
                UPDATE hooks
                SET state = 'RESOLVED', payload = ?, settled_at = ?
                WHERE token = ?
                  AND state = 'PENDING'
                  AND (expires_at IS NULL OR expires_at > ?)
                """,
                (_dumps(payload), now_millis, token, now_millis),
            )
            await self._connection.commit()

        if cursor.rowcount == 0:
            return None
        return await self.get_hook(token)

    async def expire_hook(self, token: str, now: datetime | None = None) -> Hook | None:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                """
                UPDATE hooks
                SET state = 'EXPIRED', settled_at = ?
                WHERE token = ? AND state = 'PENDING'
                """,
                (_to_millis(now or utcnow()), token),
            )
            await self._connection.commit()

        if cursor.rowcount == 0:
            return None
        return await self.get_hook(token)

    async def close_hooks(self, run_id: str) -> list[str]:
        self._check_connected()

        async with self._lock:
            async with self._connection.execute(
                "SELECT token FROM hooks WHERE run_id = ? AND state = 'PENDING'", (run_id,)
            ) as cursor:
                tokens = [row[0] for row in await cursor.fetchall()]

            await self._connection.execute(
                """
                UPDATE hooks
                SET state = 'EXPIRED', settled_at = ?
                WHERE run_id = ? AND state = 'PENDING'
                """,
                (_to_millis(utcnow()), run_id),
            )
            await self._connection.commit()

        return tokens

    async def pending_hooks(self, run_id: str | None = None) -> list[Hook]:
        self._check_connected()

        query = f"SELECT {self._HOOK_COLUMNS} FROM hooks WHERE state = 'PENDING'"
        params: tuple = ()
        if run_id is not None:
            query += " AND run_id = ?"
            params = (run_id,)
        query += " ORDER BY expires_at IS NULL, expires_at, created_at"

        async with self._connection.execute(query, params) as cursor:
            rows = await cursor.fetchall()

        return [self._row_to_hook(row) for row in rows]

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def reset(self) -> None:
        """Clear all data (for testing/demos)."""
        self._check_connected()

        async with self._lock:
            await self._connection.execute("DELETE FROM hooks")
            await self._connection.execute("DELETE FROM runs")
            await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _check_connected(self) -> None:
        """Guard clause: Ensure connection is open."""
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")

    _RUN_COLUMNS = (
        "run_id, workflow_name, status, input, checkpoint, result, error, created_at, updated_at"
    )

    _HOOK_COLUMNS = (
        "token, run_id, kind, stage, state, payload, expires_at, created_at, settled_at"
    )

    def _row_to_run(self, row: tuple) -> WorkflowRun:
        """Convert database row to WorkflowRun (column order of _RUN_COLUMNS)."""
        return WorkflowRun(
            run_id=row[0],
            workflow_name=row[1],
            status=RunStatus(row[2]),
            input=_loads(row[3]),
            checkpoint=Checkpoint.from_dict(_loads(row[4])),
            result=_loads(row[5]),
            error=row[6],
            created_at=_from_millis(row[7]),
            updated_at=_from_millis(row[8]),
        )

    def _row_to_hook(self, row: tuple) -> Hook:
        """Convert database row to Hook (column order of _HOOK_COLUMNS)."""
        return Hook(
            token=row[0],
            run_id=row[1],
            kind=row[2],
            stage=row[3],
            state=HookState(row[4]),
            payload=_loads(row[5]),
            expires_at=_from_millis(row[6]),
            created_at=_from_millis(row[7]),
            settled_at=_from_millis(row[8]),
        )
