"""
Snowflake repository for dive logs and their audits.

This module implements the repository pattern for dive log data access.
The repository:
1. Translates between DiveLog objects and database rows
2. Encapsulates all SQL queries
3. Scopes every query to the owning user

Filterable columns (owner, date, discipline, location, depth) are stored as
real columns. The complete log goes in a VARIANT payload so new log fields
don't need a migration.
"""

import json
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Optional, Protocol
from uuid import UUID

from divecoach.core.diagnostics.audit import DiveLogAudit
from divecoach.core.diagnostics.models import AttemptType, Discipline, DiveLog, ExitStatus


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Tests provide the in-memory mock without importing
    snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "DIVECOACH"
    schema: str = "TRAINING"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class DiveLogNotFoundError(Exception):
    """Raised when a log doesn't exist or belongs to another user."""
    pass


@dataclass
class DiveLogFilter:
    """Query options for listing a user's logs."""
    user_id: UUID
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    discipline: Optional[Discipline] = None
    location: Optional[str] = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if self.offset < 0:
            raise ValueError("offset cannot be negative")


class DiveLogRepository:
    """
    Repository for dive log persistence.

    Each method corresponds to a use case the application needs:
    - save: Persist a new or updated log
    - get: Load one log for its owner
    - list_for_user: Newest-first listing with filters and paging
    - list_all_for_user: Every matching log, one page at a time
    - delete: Remove a log and its audit
    - save_audit / get_audit: The latest audit of a log
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def save(self, log: DiveLog) -> DiveLog:
        """
        Insert or update a dive log.

        Idempotent: saving the same log twice updates the row.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                MERGE INTO dive_logs AS target
                USING (SELECT %(log_id)s AS log_id) AS source
                ON target.log_id = source.log_id
                WHEN MATCHED THEN UPDATE SET
                    log_date = %(log_date)s,
                    discipline = %(discipline)s,
                    location = %(location)s,
                    reached_depth = %(reached_depth)s,
                    payload = PARSE_JSON(%(payload)s),
                    updated_at = %(updated_at)s
                WHEN NOT MATCHED THEN INSERT (
                    log_id, user_id, log_date, discipline, location,
                    reached_depth, payload, created_at, updated_at
                ) VALUES (
                    %(log_id)s, %(user_id)s, %(log_date)s, %(discipline)s, %(location)s,
                    %(reached_depth)s, PARSE_JSON(%(payload)s), %(created_at)s, %(updated_at)s
                )
            """, {
                "log_id": str(log.id),
                "user_id": str(log.user_id),
                "log_date": log.date.isoformat(),
                "discipline": log.discipline.value if log.discipline else None,
                "location": log.location,
                "reached_depth": log.reached_depth,
                "payload": json.dumps(log_to_payload(log)),
                "created_at": log.created_at.isoformat(),
                "updated_at": log.updated_at.isoformat(),
            })
            self._conn.commit()

            logger.info(
                "Saved dive log",
                extra={"log_id": str(log.id), "user_id": str(log.user_id)}
            )
            return log

        except Exception as e:
            logger.error(
                "Failed to save dive log",
                extra={"log_id": str(log.id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    def get(self, log_id: UUID, user_id: UUID) -> DiveLog:
        """
        Load one log.

        Raises:
            DiveLogNotFoundError: No such log for this user
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT payload
                FROM dive_logs
                WHERE log_id = %(log_id)s AND user_id = %(user_id)s
            """, {"log_id": str(log_id), "user_id": str(user_id)})

            row = cursor.fetchone()
            if not row:
                raise DiveLogNotFoundError(f"Dive log {log_id} not found")

            return log_from_payload(_load_variant(row[0]))

        finally:
            cursor.close()

    def list_for_user(self, query: DiveLogFilter) -> list[DiveLog]:
        """Logs matching the filter, newest dive first."""
        conditions = ["user_id = %(user_id)s"]
        params: dict[str, Any] = {
            "user_id": str(query.user_id),
            "limit": query.limit,
            "offset": query.offset,
        }

        if query.date_from:
            conditions.append("log_date >= %(date_from)s")
            params["date_from"] = query.date_from.isoformat()
        if query.date_to:
            conditions.append("log_date <= %(date_to)s")
            params["date_to"] = query.date_to.isoformat()
        if query.discipline:
            conditions.append("discipline = %(discipline)s")
            params["discipline"] = query.discipline.value
        if query.location:
            conditions.append("location ILIKE %(location)s")
            params["location"] = f"%{query.location}%"

        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT payload
                FROM dive_logs
                WHERE {" AND ".join(conditions)}
                ORDER BY log_date DESC, created_at DESC, log_id
                LIMIT %(limit)s OFFSET %(offset)s
            """, params)

            return [log_from_payload(_load_variant(row[0])) for row in cursor.fetchall()]

        finally:
            cursor.close()

    def list_all_for_user(self, query: DiveLogFilter) -> list[DiveLog]:
        """
        Every log matching the filter, newest dive first.

        The filter's own limit and offset are ignored; pages of
        MAX_PAGE_SIZE are read until one comes back short.
        """
        logs: list[DiveLog] = []
        offset = 0

        while True:
            page = self.list_for_user(replace(query, limit=MAX_PAGE_SIZE, offset=offset))
            logs.extend(page)
            if len(page) < MAX_PAGE_SIZE:
                return logs
            offset += MAX_PAGE_SIZE

    def delete(self, log_id: UUID, user_id: UUID) -> None:
        """
        Delete a log and its audit.

        Raises:
            DiveLogNotFoundError: No such log for this user
        """
        cursor = self._conn.cursor()
        params = {"log_id": str(log_id), "user_id": str(user_id)}

        try:
            cursor.execute("""
                DELETE FROM dive_logs
                WHERE log_id = %(log_id)s AND user_id = %(user_id)s
            """, params)

            if cursor.rowcount == 0:
                raise DiveLogNotFoundError(f"Dive log {log_id} not found")

            cursor.execute("""
                DELETE FROM dive_log_audits
                WHERE log_id = %(log_id)s AND user_id = %(user_id)s
            """, params)

            self._conn.commit()
            logger.info("Deleted dive log", extra=params)

        finally:
            cursor.close()

    def save_audit(self, audit: DiveLogAudit, user_id: UUID) -> dict:
        """Store the latest audit of a log, replacing any earlier one."""
        payload = audit_to_payload(audit)
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                MERGE INTO dive_log_audits AS target
                USING (SELECT %(log_id)s AS log_id) AS source
                ON target.log_id = source.log_id
                WHEN MATCHED THEN UPDATE SET
                    payload = PARSE_JSON(%(payload)s),
                    audited_at = %(audited_at)s
                WHEN NOT MATCHED THEN INSERT (
                    log_id, user_id, payload, audited_at
                ) VALUES (
                    %(log_id)s, %(user_id)s, PARSE_JSON(%(payload)s), %(audited_at)s
                )
            """, {
                "log_id": str(audit.log_id),
                "user_id": str(user_id),
                "payload": json.dumps(payload),
                "audited_at": audit.audited_at.isoformat(),
            })
            self._conn.commit()
            return payload

        finally:
            cursor.close()

    def get_audit(self, log_id: UUID, user_id: UUID) -> Optional[dict]:
        """The stored audit payload, or None if the log was never audited."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT payload
                FROM dive_log_audits
                WHERE log_id = %(log_id)s AND user_id = %(user_id)s
            """, {"log_id": str(log_id), "user_id": str(user_id)})

            row = cursor.fetchone()
            return _load_variant(row[0]) if row else None

        finally:
            cursor.close()

    def ping(self) -> bool:
        """Round-trip a trivial query to check the connection."""
        cursor = self._conn.cursor()
        try:
            cursor.execute("SELECT 1")
            return cursor.fetchone() is not None
        finally:
            cursor.close()


# ---------------------------------------------------------------------------
# Payload Translation
# ---------------------------------------------------------------------------

def _load_variant(value) -> dict:
    """VARIANT columns come back as JSON text from the connector."""
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def log_to_payload(log: DiveLog) -> dict:
    return {
        "id": str(log.id),
        "user_id": str(log.user_id),
        "date": log.date.isoformat(),
        "discipline": log.discipline.value if log.discipline else None,
        "location": log.location,
        "target_depth": log.target_depth,
        "reached_depth": log.reached_depth,
        "total_time_seconds": log.total_time_seconds,
        "bottom_time_seconds": log.bottom_time_seconds,
        "descent_seconds": log.descent_seconds,
        "ascent_seconds": log.ascent_seconds,
        "mouthfill_depth": log.mouthfill_depth,
        "issue_depth": log.issue_depth,
        "issue_comment": log.issue_comment,
        "squeeze": log.squeeze,
        "ear_squeeze": log.ear_squeeze,
        "lung_squeeze": log.lung_squeeze,
        "narcosis_level": log.narcosis_level,
        "recovery_quality": log.recovery_quality,
        "exit_status": log.exit_status.value if log.exit_status else None,
        "attempt_type": log.attempt_type.value if log.attempt_type else None,
        "surface_protocol": log.surface_protocol,
        "notes": log.notes,
        "created_at": log.created_at.isoformat(),
        "updated_at": log.updated_at.isoformat(),
    }


def log_from_payload(payload: dict) -> DiveLog:
    return DiveLog(
        id=UUID(payload["id"]),
        user_id=UUID(payload["user_id"]),
        date=date.fromisoformat(payload["date"]),
        discipline=Discipline(payload["discipline"]) if payload.get("discipline") else None,
        location=payload.get("location"),
        target_depth=payload.get("target_depth"),
        reached_depth=payload.get("reached_depth"),
        total_time_seconds=payload.get("total_time_seconds"),
        bottom_time_seconds=payload.get("bottom_time_seconds"),
        descent_seconds=payload.get("descent_seconds"),
        ascent_seconds=payload.get("ascent_seconds"),
        mouthfill_depth=payload.get("mouthfill_depth"),
        issue_depth=payload.get("issue_depth"),
        issue_comment=payload.get("issue_comment"),
        squeeze=bool(payload.get("squeeze")),
        ear_squeeze=bool(payload.get("ear_squeeze")),
        lung_squeeze=bool(payload.get("lung_squeeze")),
        narcosis_level=payload.get("narcosis_level"),
        recovery_quality=payload.get("recovery_quality"),
        exit_status=ExitStatus(payload["exit_status"]) if payload.get("exit_status") else None,
        attempt_type=AttemptType(payload["attempt_type"]) if payload.get("attempt_type") else None,
        surface_protocol=payload.get("surface_protocol"),
        notes=payload.get("notes"),
        created_at=datetime.fromisoformat(payload["created_at"]),
        updated_at=datetime.fromisoformat(payload["updated_at"]),
    )


def audit_to_payload(audit: DiveLogAudit) -> dict:
    return {
        "log_id": str(audit.log_id),
        "version": audit.version,
        "audited_at": audit.audited_at.isoformat(),
        "evaluations": [
            {
                "category": e.category.value,
                "title": e.title,
                "severity": e.severity,
                "reasons": e.reasons,
                "drills": e.drills,
            }
            for e in audit.evaluations
        ],
        "scores": {
            "safety": audit.scores.safety,
            "technique": audit.scores.technique,
            "efficiency": audit.scores.efficiency,
            "readiness": audit.scores.readiness,
            "final": audit.scores.final,
        },
        "derived": {
            "total_seconds": audit.derived.total_seconds,
            "bottom_seconds": audit.derived.bottom_seconds,
            "descent_seconds": audit.derived.descent_seconds,
            "ascent_seconds": audit.derived.ascent_seconds,
            "descent_speed_mps": audit.derived.descent_speed_mps,
            "ascent_speed_mps": audit.derived.ascent_speed_mps,
            "vdi_sec_per_meter": audit.derived.vdi_sec_per_meter,
            "freefall_start_m": audit.derived.freefall_start_m,
        },
        "flags": audit.flags,
        "completeness_score": audit.completeness_score,
        "risk_score": audit.risk_score,
        "is_personal_best": audit.is_personal_best,
        "previous_best_depth": audit.previous_best_depth,
        "summary": audit.summary,
        "suggestions": audit.suggestions,
        "action_items": audit.action_items,
    }
