"""
Audit Trail
-----------
HMAC-chained record of authorization decisions and tool executions.

Every entry is signed over its own fields plus the previous entry's
signature, so editing, reordering or deleting a row breaks verification
from that row on. Anyone holding both the database and the key can
rebuild the chain; the log is tamper-evident, not tamper-proof.

Rows are only ever inserted. request_id ties every event of one
execute() call together.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence
import hashlib
import hmac
import json
import logging
import os
import platform
import sqlite3


AUDIT_KEY_ENV = "BRIDGE_AUDIT_KEY"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        event_type TEXT NOT NULL,
        actor TEXT NOT NULL,
        action TEXT NOT NULL,
        target TEXT,
        details TEXT,
        prev_hash TEXT,
        entry_hash TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_request_id ON audit_log(request_id)",
)

_COLUMNS = (
    "request_id", "timestamp", "event_type", "actor",
    "action", "target", "details", "prev_hash", "entry_hash",
)


class EventType(str, Enum):
    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    TOOL_EXECUTE = "TOOL_EXECUTE"
    TOOL_REGISTERED = "TOOL_REGISTERED"
    TOOL_UNREGISTERED = "TOOL_UNREGISTERED"


class Actor(str, Enum):
    CALLER = "caller"
    EVALUATOR = "evaluator"
    REGISTRY = "registry"
    SYSTEM = "system"


def resolve_audit_key() -> bytes:
    """
    HMAC key for the audit chain.

    BRIDGE_AUDIT_KEY when set; otherwise a key derived from the host,
    which is only good enough for development.
    """
    configured = os.environ.get(AUDIT_KEY_ENV)
    if configured:
        return configured.encode("utf-8")

    host = f"{platform.node()}-{platform.machine()}-bridge-audit"
    return hashlib.sha256(host.encode("utf-8")).digest()


@dataclass
class AuditEntry:
    """One row of the audit trail."""
    id: Optional[int] = None
    request_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: EventType = EventType.TOOL_EXECUTE
    actor: Actor = Actor.SYSTEM
    action: str = ""
    target: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    prev_hash: str = ""
    entry_hash: str = ""

    def canonical(self, prev_hash: str) -> bytes:
        """Bytes covered by the signature: sorted-key compact JSON."""
        signed = {
            "prev_hash": prev_hash,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": _enum_value(self.event_type),
            "actor": _enum_value(self.actor),
            "action": self.action,
            "target": self.target,
            "details": self.details,
        }
        return json.dumps(signed, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")

    def signature(self, key: bytes, prev_hash: str) -> str:
        return hmac.new(key, self.canonical(prev_hash), hashlib.sha256).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in _COLUMNS}
        data.update(
            id=self.id,
            timestamp=self.timestamp.isoformat(),
            event_type=_enum_value(self.event_type),
            actor=_enum_value(self.actor),
            details=_dump_details(self.details),
        )
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AuditEntry":
        raw = row["details"]
        try:
            details = json.loads(raw) if raw else None
        except json.JSONDecodeError:
            details = {"_raw": raw}

        return cls(
            id=row["id"],
            request_id=row["request_id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            event_type=EventType(row["event_type"]),
            actor=Actor(row["actor"]),
            action=row["action"],
            target=row["target"],
            details=details,
            prev_hash=row["prev_hash"] or "",
            entry_hash=row["entry_hash"],
        )


@dataclass
class VerifyResult:
    valid: bool
    entries_checked: int
    broken_at: Optional[int] = None   # id of the first bad entry
    expected_hash: Optional[str] = None
    actual_hash: Optional[str] = None
    error: Optional[str] = None


class AuditLog:
    """
    SQLite-backed audit trail.

    Usage:
        audit = AuditLog("bridge_audit.db")
        audit.log(EventType.ACCESS_DENIED, Actor.EVALUATOR, "access_denied", ctx.request_id,
                  target="create.domain", details={"reason": "read-only_access_level"})
        assert audit.verify_chain().valid
    """

    GENESIS_HASH = "0" * 64

    def __init__(self, db_path: str = "bridge_audit.db", key: Optional[bytes] = None):
        self._db_path = db_path
        self._key = key or resolve_audit_key()
        self._logger = logging.getLogger("bridge.infra.audit")

        with self._connection() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
        self._logger.debug(f"Audit trail ready at {db_path}")

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _select(self, where: str, params: Sequence[Any], limit: Optional[int] = None) -> List[AuditEntry]:
        query = f"SELECT * FROM audit_log WHERE {where} ORDER BY id"
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        with self._connection() as conn:
            return [AuditEntry.from_row(row) for row in conn.execute(query, tuple(params))]

    @staticmethod
    def _range(from_id: int, to_id: Optional[int]) -> tuple:
        if to_id:
            return "id BETWEEN ? AND ?", (from_id, to_id)
        return "id >= ?", (from_id,)

    # =========================================================================
    # Writing
    # =========================================================================

    def log(
        self,
        event_type: EventType,
        actor: Actor,
        action: str,
        request_id: str,
        target: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Append one signed entry; returns its entry_hash."""
        entry = AuditEntry(
            request_id=request_id,
            event_type=event_type,
            actor=actor,
            action=action,
            target=target,
            # stored and signed forms must agree
            details=json.loads(_dump_details(details)) if details else None,
        )

        with self._connection() as conn:
            last = conn.execute("SELECT entry_hash FROM audit_log ORDER BY id DESC LIMIT 1").fetchone()
            entry.prev_hash = last["entry_hash"] if last else self.GENESIS_HASH
            entry.entry_hash = entry.signature(self._key, entry.prev_hash)

            row = entry.to_dict()
            cursor = conn.execute(
                f"INSERT INTO audit_log ({', '.join(_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _COLUMNS)})",
                tuple(row[name] for name in _COLUMNS),
            )
            entry.id = cursor.lastrowid

        self._logger.debug(
            f"#{entry.id} {_enum_value(event_type)} {_enum_value(actor)}:{action} "
            f"target={target or '-'} request={request_id}"
        )
        return entry.entry_hash

    # =========================================================================
    # Reading
    # =========================================================================

    def get_request_trail(self, request_id: str) -> List[AuditEntry]:
        """Every entry recorded for one request, oldest first."""
        return self._select("request_id = ?", (request_id,))

    def get_entries(self, from_id: int = 1, to_id: Optional[int] = None, limit: int = 1000) -> List[AuditEntry]:
        where, params = self._range(from_id, to_id)
        return self._select(where, params, limit=limit)

    def verify_chain(self, from_id: int = 1, to_id: Optional[int] = None) -> VerifyResult:
        """Re-sign every entry in the range and compare against the stored chain."""
        where, params = self._range(from_id, to_id)
        entries = self._select(where, params)
        if not entries:
            return VerifyResult(valid=True, entries_checked=0)

        expected_prev = self.GENESIS_HASH
        if from_id > 1:
            before = self._select("id = ?", (from_id - 1,))
            if before:
                expected_prev = before[0].entry_hash

        for checked, entry in enumerate(entries):
            if entry.prev_hash != expected_prev:
                return self._broken(entry, checked, "prev_hash", expected_prev, entry.prev_hash)

            recomputed = entry.signature(self._key, entry.prev_hash)
            if not hmac.compare_digest(recomputed, entry.entry_hash):
                return self._broken(entry, checked, "entry_hash", recomputed, entry.entry_hash)

            expected_prev = entry.entry_hash

        return VerifyResult(valid=True, entries_checked=len(entries))

    def _broken(self, entry: AuditEntry, checked: int, column: str, expected: str, actual: str) -> VerifyResult:
        self._logger.warning(f"Audit chain broken at entry {entry.id} ({column})")
        return VerifyResult(
            valid=False,
            entries_checked=checked,
            broken_at=entry.id,
            expected_hash=expected,
            actual_hash=actual,
            error=f"{column} mismatch at entry {entry.id}",
        )

    def get_stats(self) -> Dict[str, Any]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN event_type = ? THEN 1 ELSE 0 END) AS denied,
                       MIN(timestamp) AS first,
                       MAX(timestamp) AS last
                FROM audit_log
                """,
                (EventType.ACCESS_DENIED.value,),
            ).fetchone()

        return {
            "total_entries": row["total"],
            "access_denied": row["denied"] or 0,
            "first_entry": row["first"],
            "last_entry": row["last"],
        }


_audit_logger = logging.getLogger("bridge.audit")


def record_audit_event(
    audit_log: Optional[AuditLog],
    event_type: EventType,
    actor: Actor,
    action: str,
    request_id: Optional[str],
    target: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Emit an audit event to the 'bridge.audit' logger and, when an
    AuditLog is configured, append it to the trail.

    Returns the entry hash when the event was persisted.
    """
    request_id = request_id or "-"
    level = logging.WARNING if event_type == EventType.ACCESS_DENIED else logging.INFO
    _audit_logger.log(
        level,
        f"{event_type.value}: action={action} target={target or '-'} details={details or {}}",
        extra={"request_id": request_id},
    )

    if audit_log is None:
        return None
    return audit_log.log(event_type, actor, action, request_id, target=target, details=details)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _dump_details(details: Optional[Dict[str, Any]]) -> Optional[str]:
    if not details:
        return None
    return json.dumps(details, sort_keys=True, default=str)
