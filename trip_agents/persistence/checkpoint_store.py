"""
Durable checkpoints and interrupt records.

A suspended run is stored as a pair: the Checkpoint (full TripState plus
the node to resume at) and the InterruptRecord the user must answer. The
pair is written atomically so a crash never leaves an interrupt without
its checkpoint or the reverse.
"""

import copy
import json
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel, Field

from trip_agents.hitl.schemas import InterruptRecord, InterruptStatus
from trip_agents.shared.errors import CheckpointStoreError


logger = logging.getLogger(__name__)


class Checkpoint(BaseModel):
    """Snapshot of one thread; a new save replaces the previous one."""

    thread_id: str
    state: Dict[str, Any]
    next_node: Optional[str] = Field(default=None, description="Node to resume at; None once complete")
    created_at: float = Field(default_factory=time.time)


class CheckpointStore(ABC):
    """Storage for checkpoints and interrupt records, keyed by thread id."""

    @abstractmethod
    def save_suspension(self, checkpoint: Checkpoint, interrupt: InterruptRecord) -> None:
        """Persist a checkpoint and its pending interrupt, both or neither."""

    @abstractmethod
    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        ...

    @abstractmethod
    def load_checkpoint(self, thread_id: str) -> Optional[Checkpoint]:
        ...

    @abstractmethod
    def delete_checkpoint(self, thread_id: str) -> bool:
        ...

    @abstractmethod
    def get_interrupt(self, thread_id: str) -> Optional[InterruptRecord]:
        ...

    @abstractmethod
    def transition_interrupt(
        self,
        thread_id: str,
        expected: InterruptStatus,
        new: InterruptStatus,
        user_decision: Optional[Dict[str, Any]] = None,
        at: Optional[float] = None,
        interrupt_id: Optional[str] = None,
    ) -> Optional[InterruptRecord]:
        """
        Compare-and-set the interrupt status.

        When interrupt_id is given the record must also still carry that id.

        Returns:
            The updated record, or None when the record is missing or its
            status is no longer `expected`.
        """

    @abstractmethod
    def list_interrupts(self, status: Optional[InterruptStatus] = None) -> List[InterruptRecord]:
        ...

    @abstractmethod
    def expire_pending(self, now: float) -> List[str]:
        """Flip every pending interrupt past its expiry to expired; returns thread ids."""


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store; records are deep-copied in and out."""

    def __init__(self):
        self._checkpoints: Dict[str, Checkpoint] = {}
        self._interrupts: Dict[str, InterruptRecord] = {}
        self._lock = threading.Lock()

    def save_suspension(self, checkpoint: Checkpoint, interrupt: InterruptRecord) -> None:
        with self._lock:
            self._checkpoints[checkpoint.thread_id] = checkpoint.model_copy(deep=True)
            self._interrupts[interrupt.thread_id] = interrupt.model_copy(deep=True)

    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        with self._lock:
            self._checkpoints[checkpoint.thread_id] = checkpoint.model_copy(deep=True)

    def load_checkpoint(self, thread_id: str) -> Optional[Checkpoint]:
        with self._lock:
            checkpoint = self._checkpoints.get(thread_id)
            return checkpoint.model_copy(deep=True) if checkpoint else None

    def delete_checkpoint(self, thread_id: str) -> bool:
        with self._lock:
            return self._checkpoints.pop(thread_id, None) is not None

    def get_interrupt(self, thread_id: str) -> Optional[InterruptRecord]:
        with self._lock:
            record = self._interrupts.get(thread_id)
            return record.model_copy(deep=True) if record else None

    def transition_interrupt(self, thread_id, expected, new, user_decision=None, at=None, interrupt_id=None):
        with self._lock:
            record = self._interrupts.get(thread_id)
            if record is None or record.status != expected:
                return None
            if interrupt_id is not None and record.interrupt_id != interrupt_id:
                return None
            updated = record.model_copy(
                update={
                    "status": new,
                    "resumed_at": at if at is not None else record.resumed_at,
                    "user_decision": copy.deepcopy(user_decision)
                    if user_decision is not None
                    else record.user_decision,
                }
            )
            self._interrupts[thread_id] = updated
            return updated.model_copy(deep=True)

    def list_interrupts(self, status=None):
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._interrupts.values()
                if status is None or r.status == status
            ]

    def expire_pending(self, now: float) -> List[str]:
        expired = []
        with self._lock:
            for thread_id, record in self._interrupts.items():
                if record.status == InterruptStatus.PENDING and record.is_expired(now):
                    self._interrupts[thread_id] = record.model_copy(
                        update={"status": InterruptStatus.EXPIRED}
                    )
                    expired.append(thread_id)
        return expired


def _to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def _from_json(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


class SQLiteCheckpointStore(CheckpointStore):
    """
    SQLite-backed store that survives process restarts.

    State, options and decisions are stored as JSON text columns. Each
    public method runs in a single transaction under a process lock.
    """

    backend = "sqlite"

    def __init__(self, db_path: Union[str, Path]):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """One transaction on a short-lived connection; closed on exit."""
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS checkpoints (
                    thread_id TEXT PRIMARY KEY,
                    state_json TEXT NOT NULL,
                    next_node TEXT,
                    created_at REAL NOT NULL
                );

                CREATE TABLE IF NOT EXISTS interrupts (
                    thread_id TEXT PRIMARY KEY,
                    interrupt_id TEXT,
                    interrupt_type TEXT NOT NULL,
                    message TEXT NOT NULL,
                    options_json TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    expires_at REAL NOT NULL,
                    resumed_at REAL,
                    user_decision_json TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_interrupts_status ON interrupts(status);
                """
            )
            columns = {row[1] for row in conn.execute("PRAGMA table_info(interrupts)")}
            if "interrupt_id" not in columns:
                # databases created before interrupts carried an id
                conn.execute("ALTER TABLE interrupts ADD COLUMN interrupt_id TEXT")
                conn.execute(
                    "UPDATE interrupts SET interrupt_id = lower(hex(randomblob(16))) WHERE interrupt_id IS NULL"
                )

    @staticmethod
    def _write_checkpoint(conn: sqlite3.Connection, checkpoint: Checkpoint) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO checkpoints (thread_id, state_json, next_node, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                checkpoint.thread_id,
                _to_json(checkpoint.state),
                checkpoint.next_node,
                checkpoint.created_at,
            ),
        )

    @staticmethod
    def _row_to_interrupt(row: tuple) -> InterruptRecord:
        return InterruptRecord(
            thread_id=row[0],
            interrupt_type=row[1],
            message=row[2],
            options=_from_json(row[3], {}),
            status=row[4],
            created_at=row[5],
            expires_at=row[6],
            resumed_at=row[7],
            user_decision=_from_json(row[8], None),
            interrupt_id=row[9],
        )

    _INTERRUPT_COLUMNS = (
        "thread_id, interrupt_type, message, options_json, status, "
        "created_at, expires_at, resumed_at, user_decision_json, interrupt_id"
    )

    def save_suspension(self, checkpoint: Checkpoint, interrupt: InterruptRecord) -> None:
        try:
            with self._lock, self._connect() as conn:
                self._write_checkpoint(conn, checkpoint)
                conn.execute(
                    f"""
                    INSERT OR REPLACE INTO interrupts ({self._INTERRUPT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        interrupt.thread_id,
                        interrupt.interrupt_type.value,
                        interrupt.message,
                        _to_json(interrupt.options),
                        interrupt.status.value,
                        interrupt.created_at,
                        interrupt.expires_at,
                        interrupt.resumed_at,
                        _to_json(interrupt.user_decision) if interrupt.user_decision is not None else None,
                        interrupt.interrupt_id,
                    ),
                )
        except sqlite3.Error as e:
            raise CheckpointStoreError(f"Failed to save suspension: {e}", checkpoint.thread_id) from e

    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        try:
            with self._lock, self._connect() as conn:
                self._write_checkpoint(conn, checkpoint)
        except sqlite3.Error as e:
            raise CheckpointStoreError(f"Failed to save checkpoint: {e}", checkpoint.thread_id) from e

    def load_checkpoint(self, thread_id: str) -> Optional[Checkpoint]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT thread_id, state_json, next_node, created_at FROM checkpoints WHERE thread_id = ?",
                (thread_id,),
            ).fetchone()
        if row is None:
            return None
        return Checkpoint(
            thread_id=row[0], state=_from_json(row[1], {}), next_node=row[2], created_at=row[3]
        )

    def delete_checkpoint(self, thread_id: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM checkpoints WHERE thread_id = ?", (thread_id,))
            return cursor.rowcount > 0

    def get_interrupt(self, thread_id: str) -> Optional[InterruptRecord]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                f"SELECT {self._INTERRUPT_COLUMNS} FROM interrupts WHERE thread_id = ?",
                (thread_id,),
            ).fetchone()
        return self._row_to_interrupt(row) if row else None

    def transition_interrupt(self, thread_id, expected, new, user_decision=None, at=None, interrupt_id=None):
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE interrupts SET
                    status = ?,
                    resumed_at = COALESCE(?, resumed_at),
                    user_decision_json = COALESCE(?, user_decision_json)
                WHERE thread_id = ? AND status = ? AND (? IS NULL OR interrupt_id = ?)
                """,
                (
                    new.value,
                    at,
                    _to_json(user_decision) if user_decision is not None else None,
                    thread_id,
                    expected.value,
                    interrupt_id,
                    interrupt_id,
                ),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                f"SELECT {self._INTERRUPT_COLUMNS} FROM interrupts WHERE thread_id = ?",
                (thread_id,),
            ).fetchone()
        return self._row_to_interrupt(row)

    def list_interrupts(self, status=None):
        query = f"SELECT {self._INTERRUPT_COLUMNS} FROM interrupts"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value,)
        with self._lock, self._connect() as conn:
            rows = conn.execute(query + " ORDER BY created_at", params).fetchall()
        return [self._row_to_interrupt(row) for row in rows]

    def expire_pending(self, now: float) -> List[str]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT thread_id FROM interrupts WHERE status = ? AND expires_at <= ?",
                (InterruptStatus.PENDING.value, now),
            ).fetchall()
            thread_ids = [row[0] for row in rows]
            conn.executemany(
                "UPDATE interrupts SET status = ? WHERE thread_id = ? AND status = ?",
                [(InterruptStatus.EXPIRED.value, t, InterruptStatus.PENDING.value) for t in thread_ids],
            )
        if thread_ids:
            logger.info(f"Expired {len(thread_ids)} pending interrupt(s)")
        return thread_ids


def create_checkpoint_store(db_path: Optional[str] = None) -> CheckpointStore:
    """SQLite store when a path is given, in-memory store otherwise."""
    if db_path:
        return SQLiteCheckpointStore(db_path)
    return InMemoryCheckpointStore()
