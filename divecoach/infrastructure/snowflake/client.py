"""
Connections to the Snowflake database that holds dive logs.

A real connection comes from snowflake-connector-python. Mock mode swaps in
an in-memory stand-in that understands the repository queries.

Most code never touches this module directly - it goes through
DiveLogRepository which handles the translation between dive logs and
database rows.
"""

import base64
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from cryptography.hazmat.primitives import serialization

from .repositories.dive_logs import SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Could not open a connection with the configured credentials."""
    pass


def _load_private_key(pem_bytes: bytes) -> bytes:
    """
    Convert a PEM private key into the DER bytes snowflake-connector expects.

    The key must not be password protected.
    """
    private_key = serialization.load_pem_private_key(pem_bytes, password=None)

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _read_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    """Key from a file path, else from base64 (used in deployments)."""
    if config.private_key_path:
        with open(config.private_key_path, "rb") as key_file:
            return _load_private_key(key_file.read())
    if config.private_key_base64:
        return _load_private_key(base64.b64decode(config.private_key_base64))
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Open a Snowflake connection and close it on exit.

    Key-pair auth wins when a private key is configured:
    - If a private key is configured, uses key-pair auth
    - Otherwise the password is used

    Usage:
        with get_snowflake_connection(config) as conn:
            repo = DiveLogRepository(conn)
    """
    import snowflake.connector

    private_key = _read_private_key(config)

    connect_params = {
        "account": config.account,
        "user": config.user,
        "database": config.database,
        "schema": config.schema,
        "warehouse": config.warehouse,
        "role": config.role,
        "client_session_keep_alive": True,
    }

    if private_key:
        logger.info("Snowflake auth: key pair")
        connect_params["private_key"] = private_key
    elif config.password:
        logger.info("Snowflake auth: password")
        connect_params["password"] = config.password
    else:
        raise SnowflakeConnectionError(
            "Either password or a private key must be provided"
        )

    try:
        conn = snowflake.connector.connect(**connect_params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Could not connect to Snowflake",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Could not connect to Snowflake: {e}")

    logger.debug(
        "Snowflake connection open",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Snowflake connection closed")
        except Exception as e:
            logger.warning(
                "Snowflake connection did not close cleanly",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# In-Memory Mock
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    In-memory cursor.

    Implements just enough of the cursor interface for DiveLogRepository:
    the MERGE upserts, the filtered SELECTs, DELETE and a ping. Queries are
    recognised by pattern matching and parameters arrive as a dict.
    """

    def __init__(self, storage: dict) -> None:
        self._storage = storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[dict] = None) -> "MockSnowflakeCursor":
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = " ".join(query.upper().split())
        params = params or {}
        self._results = []
        self._rowcount = 0

        if query_upper.startswith("MERGE INTO DIVE_LOG_AUDITS"):
            self._upsert("dive_log_audits", params)
        elif query_upper.startswith("MERGE INTO DIVE_LOGS"):
            self._upsert("dive_logs", params)
        elif query_upper == "SELECT 1":
            self._results = [(1,)]
        elif query_upper.startswith("SELECT") and "FROM DIVE_LOG_AUDITS" in query_upper:
            self._results = [(row["payload"],) for row in self._matching("dive_log_audits", params)]
        elif query_upper.startswith("SELECT") and "FROM DIVE_LOGS" in query_upper:
            self._select_logs(params)
        elif query_upper.startswith("DELETE FROM DIVE_LOG_AUDITS"):
            self._delete("dive_log_audits", params)
        elif query_upper.startswith("DELETE FROM DIVE_LOGS"):
            self._delete("dive_logs", params)

        return self

    def _upsert(self, table: str, params: dict) -> None:
        existing = self._storage[table].get(params["log_id"], {})
        row = {**existing, **params}
        # Ownership and creation time are fixed at insert
        for key in ("user_id", "created_at"):
            if key in existing:
                row[key] = existing[key]
        self._storage[table][params["log_id"]] = row
        self._rowcount = 1

    def _matching(self, table: str, params: dict) -> list[dict]:
        return [
            row for row in self._storage[table].values()
            if row["user_id"] == params.get("user_id")
            and ("log_id" not in params or row["log_id"] == params["log_id"])
        ]

    def _select_logs(self, params: dict) -> None:
        rows = self._matching("dive_logs", params)

        if "date_from" in params:
            rows = [r for r in rows if r["log_date"] >= params["date_from"]]
        if "date_to" in params:
            rows = [r for r in rows if r["log_date"] <= params["date_to"]]
        if "discipline" in params:
            rows = [r for r in rows if r["discipline"] == params["discipline"]]
        if "location" in params:
            needle = params["location"].strip("%").lower()
            rows = [r for r in rows if needle in (r["location"] or "").lower()]

        rows.sort(key=lambda r: r["log_id"])
        rows.sort(key=lambda r: (r["log_date"], r["created_at"]), reverse=True)

        offset = params.get("offset", 0)
        if "limit" in params:
            rows = rows[offset:offset + params["limit"]]

        self._results = [(row["payload"],) for row in rows]

    def _delete(self, table: str, params: dict) -> None:
        doomed = [row["log_id"] for row in self._matching(table, params)]
        for log_id in doomed:
            del self._storage[table][log_id]
        self._rowcount = len(doomed)

    def fetchone(self):
        """First result row, or None."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """All result rows."""
        return self._results

    def close(self) -> None:
        """Nothing to release."""
        pass

    @property
    def rowcount(self) -> int:
        """Rows touched by the last MERGE or DELETE."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    In-memory Snowflake stand-in.

    Each table is a dict of rows keyed by log id.
    This enables running the full API without a real database:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {log_id: row_dict}}
        self._storage: dict[str, dict[str, dict]] = {
            "dive_logs": {},
            "dive_log_audits": {},
        }

        logger.info("Using in-memory dive log storage")

    def cursor(self) -> MockSnowflakeCursor:
        """Cursor over the shared in-memory tables."""
        return MockSnowflakeCursor(self._storage)

    def commit(self) -> None:
        """Writes are applied immediately; nothing to commit."""
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Writes cannot be undone in the mock."""
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Storage lives as long as the object."""
        logger.debug("Mock connection close")


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Yield a real or in-memory connection depending on mock mode.

    Args:
        config: Connection settings, required outside mock mode
        mock_mode: If True, yield a fresh in-memory connection

    Yields:
        A connection the repositories can use
    """
    if mock_mode:
        conn = MockSnowflakeConnection()
        try:
            yield conn
        finally:
            conn.close()
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn
