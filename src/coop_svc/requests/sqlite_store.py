"""SQLite request store - conditional writes via ``UPDATE ... WHERE status = ?``."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path

from ..errors import NotFoundError, StaleStateError
from ..policy.types import Module
from .store import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ListFilter,
    Page,
    RequestStore,
    new_request_id,
    normalize_paging,
)
from .types import (
    ApprovalStep,
    HistoryEntry,
    LinkedEntity,
    Priority,
    Request,
    RequestStatus,
    RequestType,
    StatusUpdate,
    StepStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "coop_requests.db"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS requests (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    module TEXT NOT NULL,
    status TEXT NOT NULL,
    initiator_id TEXT NOT NULL,
    linked_module TEXT,
    linked_entity_id TEXT,
    content TEXT NOT NULL DEFAULT '{}',
    priority TEXT NOT NULL,
    priority_rank INTEGER NOT NULL DEFAULT 0,
    current_approval_level INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT
);

-- One row per chain stage
CREATE TABLE IF NOT EXISTS request_steps (
    request_id TEXT NOT NULL REFERENCES requests(id) ON DELETE CASCADE,
    level INTEGER NOT NULL,
    approver_role TEXT NOT NULL,
    status TEXT NOT NULL,
    approver_id TEXT,
    acted_at TEXT,
    notes TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (request_id, level)
);

-- Append-only audit trail
CREATE TABLE IF NOT EXISTS request_history (
    id INTEGER PRIMARY KEY,
    request_id TEXT NOT NULL REFERENCES requests(id) ON DELETE CASCADE,
    from_status TEXT NOT NULL,
    to_status TEXT NOT NULL,
    actor_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_requests_status ON requests(status);
CREATE INDEX IF NOT EXISTS idx_requests_type ON requests(type);
CREATE INDEX IF NOT EXISTS idx_requests_initiator ON requests(initiator_id);
CREATE INDEX IF NOT EXISTS idx_steps_approver ON request_steps(approver_id);
CREATE INDEX IF NOT EXISTS idx_history_request ON request_history(request_id);
"""

# Sort field -> column. Keys mirror store.SORT_FIELDS.
_SORT_COLUMNS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "priority": "priority_rank",
    "status": "status",
    "type": "type",
    "current_approval_level": "current_approval_level",
}


def init_db(db_path: str | Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file, or ":memory:".

    Returns:
        A connection to the database.
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return conn


class SqliteRequestStore(RequestStore):
    """
    Request store backed by SQLite.

    The status write in ``compare_and_set`` is a single conditional UPDATE;
    step and history rows are written in the same transaction.
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH, max_page_size: int = MAX_PAGE_SIZE):
        self.db_path = db_path
        self.max_page_size = max_page_size
        self.conn = init_db(db_path)
        # One shared connection; serialize access from worker threads.
        self._lock = threading.Lock()

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, request: Request) -> Request:
        if not request.id:
            request.id = new_request_id()
        now = utc_now()
        stored = request.snapshot()
        stored.created_at = now
        stored.updated_at = now
        with self._lock, self.conn:
            self._insert(stored)
        logger.info(f"Request created: {stored.id} ({stored.type.value}) by {stored.initiator_id}")
        return stored

    def restore(self, request: Request) -> Request:
        stored = request.snapshot()
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM requests WHERE id = ?", (stored.id,))
            self._insert(stored)
        return stored

    def delete(self, request_id: str, expected_status: RequestStatus | None = None) -> bool:
        with self._lock, self.conn:
            if expected_status is None:
                cursor = self.conn.execute("DELETE FROM requests WHERE id = ?", (request_id,))
            else:
                cursor = self.conn.execute(
                    """
                    DELETE FROM requests
                    WHERE id = ? AND status = ?
                      AND NOT EXISTS (SELECT 1 FROM request_history WHERE request_id = ?)
                    """,
                    (request_id, expected_status.value, request_id),
                )
                if cursor.rowcount == 0 and self._exists(request_id):
                    row = self.conn.execute(
                        "SELECT status FROM requests WHERE id = ?", (request_id,)
                    ).fetchone()
                    raise StaleStateError(
                        f"Request {request_id} is {row['status']} or has history",
                        expected=expected_status.value,
                        actual=row["status"],
                    )
        if cursor.rowcount:
            logger.info(f"Request deleted: {request_id}")
        return cursor.rowcount > 0

    def append_history(self, request_id: str, entry: HistoryEntry) -> Request:
        with self._lock, self.conn:
            if not self._exists(request_id):
                raise NotFoundError(f"Request not found: {request_id}")
            self._insert_history(request_id, entry)
            self.conn.execute(
                "UPDATE requests SET updated_at = ? WHERE id = ?",
                (entry.timestamp, request_id),
            )
        return self._load(request_id)

    def compare_and_set(
        self,
        request_id: str,
        expected_status: RequestStatus,
        update: StatusUpdate,
    ) -> Request:
        with self._lock, self.conn:
            cursor = self.conn.execute(
                """
                UPDATE requests
                SET status = ?, current_approval_level = ?, updated_at = ?,
                    completed_at = COALESCE(?, completed_at)
                WHERE id = ? AND status = ?
                """,
                (
                    update.to_status.value,
                    update.current_approval_level,
                    update.entry.timestamp,
                    update.completed_at,
                    request_id,
                    expected_status.value,
                ),
            )
            if cursor.rowcount == 0:
                row = self.conn.execute(
                    "SELECT status FROM requests WHERE id = ?", (request_id,)
                ).fetchone()
                if row is None:
                    raise NotFoundError(f"Request not found: {request_id}")
                raise StaleStateError(
                    f"Request {request_id} is {row['status']}, expected {expected_status.value}",
                    expected=expected_status.value,
                    actual=row["status"],
                )
            for step in update.approval_steps:
                self.conn.execute(
                    """
                    UPDATE request_steps
                    SET status = ?, approver_id = ?, acted_at = ?, notes = ?
                    WHERE request_id = ? AND level = ?
                    """,
                    (step.status.value, step.approver_id, step.acted_at, step.notes,
                     request_id, step.level),
                )
            self._insert_history(request_id, update.entry)

        logger.info(f"Request {request_id} status {expected_status.value} -> {update.to_status.value}")
        return self._load(request_id)

    def clear(self) -> None:
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM request_history")
            self.conn.execute("DELETE FROM request_steps")
            self.conn.execute("DELETE FROM requests")

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, request_id: str) -> Request | None:
        with self._lock:
            if not self._exists(request_id):
                return None
            return self._load_unlocked(request_id)

    def all_requests(self) -> list[Request]:
        with self._lock:
            ids = [r["id"] for r in self.conn.execute("SELECT id FROM requests ORDER BY created_at, id")]
            return [self._load_unlocked(i) for i in ids]

    def list_by_filter(
        self,
        filters: ListFilter | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page:
        page, limit, sort_by, descending = normalize_paging(
            page, limit, sort_by, sort_order, self.max_page_size
        )
        where, params = self._where_clause(filters or ListFilter())
        order = "DESC" if descending else "ASC"

        with self._lock:
            total = self.conn.execute(
                f"SELECT COUNT(*) AS cnt FROM requests {where}", params
            ).fetchone()["cnt"]
            rows = self.conn.execute(
                f"""
                SELECT id FROM requests {where}
                ORDER BY {_SORT_COLUMNS[sort_by]} {order}, id ASC
                LIMIT ? OFFSET ?
                """,
                [*params, limit, (page - 1) * limit],
            ).fetchall()
            data = [self._load_unlocked(r["id"]) for r in rows]

        return Page(data=data, total=total, page=page, limit=limit)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _where_clause(filters: ListFilter) -> tuple[str, list]:
        clauses: list[str] = []
        params: list = []
        if filters.type is not None:
            clauses.append("type = ?")
            params.append(filters.type.value)
        if filters.status is not None:
            clauses.append("status = ?")
            params.append(filters.status.value)
        if filters.statuses:
            marks = ", ".join("?" for _ in filters.statuses)
            clauses.append(f"status IN ({marks})")
            params.extend(sorted(s.value for s in filters.statuses))
        if filters.module is not None:
            clauses.append("module = ?")
            params.append(filters.module.value)
        if filters.initiator_id is not None:
            clauses.append("initiator_id = ?")
            params.append(filters.initiator_id)
        if filters.actor_id is not None:
            clauses.append(
                "(initiator_id = ? OR id IN "
                "(SELECT request_id FROM request_steps WHERE approver_id = ?))"
            )
            params.extend([filters.actor_id, filters.actor_id])
        if filters.created_from is not None:
            clauses.append("created_at >= ?")
            params.append(filters.created_from)
        if filters.created_to is not None:
            clauses.append("created_at <= ?")
            params.append(filters.created_to)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _exists(self, request_id: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM requests WHERE id = ?", (request_id,)).fetchone()
        return row is not None

    def _insert(self, request: Request) -> None:
        linked = request.linked_entity
        self.conn.execute(
            """
            INSERT INTO requests (
                id, type, module, status, initiator_id, linked_module, linked_entity_id,
                content, priority, priority_rank, current_approval_level,
                created_at, updated_at, completed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                request.id,
                request.type.value,
                request.module.value,
                request.status.value,
                request.initiator_id,
                linked.domain_module if linked else None,
                linked.entity_id if linked else None,
                json.dumps(request.content),
                request.priority.value,
                request.priority.rank,
                request.current_approval_level,
                request.created_at,
                request.updated_at,
                request.completed_at,
            ),
        )
        self.conn.executemany(
            """
            INSERT INTO request_steps
                (request_id, level, approver_role, status, approver_id, acted_at, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (request.id, s.level, s.approver_role, s.status.value,
                 s.approver_id, s.acted_at, s.notes)
                for s in request.approval_steps
            ],
        )
        for entry in request.history:
            self._insert_history(request.id, entry)

    def _insert_history(self, request_id: str, entry: HistoryEntry) -> None:
        self.conn.execute(
            """
            INSERT INTO request_history (request_id, from_status, to_status, actor_id, timestamp, notes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (request_id, entry.from_status.value, entry.to_status.value,
             entry.actor_id, entry.timestamp, entry.notes),
        )

    def _load(self, request_id: str) -> Request:
        with self._lock:
            return self._load_unlocked(request_id)

    def _load_unlocked(self, request_id: str) -> Request:
        row = self.conn.execute("SELECT * FROM requests WHERE id = ?", (request_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Request not found: {request_id}")

        steps = [
            ApprovalStep(
                level=s["level"],
                approver_role=s["approver_role"],
                status=StepStatus(s["status"]),
                approver_id=s["approver_id"],
                acted_at=s["acted_at"],
                notes=s["notes"],
            )
            for s in self.conn.execute(
                "SELECT * FROM request_steps WHERE request_id = ? ORDER BY level", (request_id,)
            )
        ]
        history = [
            HistoryEntry(
                from_status=RequestStatus(h["from_status"]),
                to_status=RequestStatus(h["to_status"]),
                actor_id=h["actor_id"],
                timestamp=h["timestamp"],
                notes=h["notes"],
            )
            for h in self.conn.execute(
                "SELECT * FROM request_history WHERE request_id = ? ORDER BY id", (request_id,)
            )
        ]
        linked = None
        if row["linked_module"]:
            linked = LinkedEntity(domain_module=row["linked_module"], entity_id=row["linked_entity_id"])

        return Request(
            id=row["id"],
            type=RequestType(row["type"]),
            initiator_id=row["initiator_id"],
            module=Module(row["module"]),
            status=RequestStatus(row["status"]),
            linked_entity=linked,
            content=json.loads(row["content"]),
            priority=Priority(row["priority"]),
            approval_steps=steps,
            current_approval_level=row["current_approval_level"],
            history=history,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
        )
