"""
Snowflake database connection management.

Provides the connection pool shared by every request, plus a mock
connection with in-memory tables for local development.

Most code never touches this module directly - it goes through
MediaCatalogRepository, which handles the translation between domain
models and database rows.
"""

import logging
import re
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from .repositories.media import SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(key_path: str):
    """
    Load private key from file for key-pair authentication.

    Snowflake requires the private key as DER bytes, not a file path.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    with open(key_path, 'rb') as key_file:
        private_key = serialization.load_pem_private_key(
            key_file.read(),
            password=None,
            backend=default_backend()
        )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def connect_snowflake(config: SnowflakeConfig) -> SnowflakeConnection:
    """
    Open a new Snowflake connection.

    Supports both password and key-pair authentication:
    - If private_key_path is set, uses key-pair auth
    - Otherwise, uses password auth
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
        'client_session_keep_alive': True,
    }

    if config.private_key_path:
        logger.info("Using key-pair authentication for Snowflake")
        connect_params['private_key'] = _load_private_key(config.private_key_path)
    elif config.password:
        logger.info("Using password authentication for Snowflake")
        connect_params['password'] = config.password
    else:
        raise SnowflakeConnectionError(
            "Either password or private_key_path must be provided"
        )

    try:
        conn = snowflake.connector.connect(**connect_params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    logger.debug(
        "Established Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )
    return conn


def _close_quietly(conn) -> None:
    try:
        conn.close()
    except Exception as e:
        logger.warning(
            "Error closing Snowflake connection",
            extra={"error": str(e)}
        )


# ---------------------------------------------------------------------------
# Connection Pool
# ---------------------------------------------------------------------------

class SnowflakeConnectionPool:
    """
    Connection pool shared by all request handlers.

    Connections are opened lazily and up to pool_size idle ones are kept
    for reuse. A connection whose user raised is closed instead of being
    returned, since its session state is unknown.
    """

    def __init__(self, config: SnowflakeConfig, pool_size: int = 5) -> None:
        self._config = config
        self._pool_size = pool_size
        self._idle: list[SnowflakeConnection] = []
        self._lock = threading.Lock()

        logger.info(
            "Initialized Snowflake connection pool",
            extra={"pool_size": pool_size}
        )

    @contextmanager
    def get_connection(self) -> Generator[SnowflakeConnection, None, None]:
        conn = self._acquire()
        try:
            yield conn
        except Exception:
            _close_quietly(conn)
            raise
        else:
            self._release(conn)

    def close(self) -> None:
        with self._lock:
            idle, self._idle = self._idle, []
        for conn in idle:
            _close_quietly(conn)
        logger.debug("Closed Snowflake connection pool", extra={"closed": len(idle)})

    def _acquire(self) -> SnowflakeConnection:
        with self._lock:
            if self._idle:
                return self._idle.pop()
        return connect_snowflake(self._config)

    def _release(self, conn: SnowflakeConnection) -> None:
        with self._lock:
            if len(self._idle) < self._pool_size:
                self._idle.append(conn)
                return
        _close_quietly(conn)


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

_TABLE_PATTERN = re.compile(r'\b(?:INTO|FROM)\s+(\w+)')


class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support
    MediaCatalogRepository: INSERT of full rows, SELECT of full rows or of
    object_key only, optional ORDER BY upload_date DESC, and SELECT 1.
    """

    def __init__(self, storage: dict) -> None:
        self._storage = storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = ' '.join(query.upper().split())

        if query_upper.startswith('INSERT INTO'):
            self._handle_insert(query_upper, params)
        elif query_upper.startswith('SELECT'):
            self._handle_select(query_upper)

        return self

    def _table(self, query: str) -> list:
        match = _TABLE_PATTERN.search(query)
        if not match or match.group(1).lower() not in self._storage:
            raise ValueError(f"Unknown table in query: {query}")
        return self._storage[match.group(1).lower()]

    def _handle_insert(self, query: str, params: Optional[tuple]) -> None:
        if not params:
            return

        self._table(query).append(tuple(params))
        self._rowcount = 1

    def _handle_select(self, query: str) -> None:
        if query == 'SELECT 1':
            self._results = [(1,)]
            return

        rows = list(self._table(query))

        if 'ORDER BY UPLOAD_DATE DESC' in query:
            rows.sort(key=lambda row: row[4], reverse=True)

        if query.startswith('SELECT OBJECT_KEY FROM'):
            rows = [(row[1],) for row in rows]

        self._results = rows
        self._rowcount = len(rows)

    def fetchone(self):
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        return self._results

    def close(self) -> None:
        pass

    @property
    def rowcount(self) -> int:
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores rows in memory, keyed by table name. Not suitable for
    production, but enough for local development, unit tests and CI.
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: [row_tuple, ...]}
        self._storage: dict[str, list[tuple]] = {
            'images': [],
            'videos': [],
        }

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        return MockSnowflakeCursor(self._storage)

    def commit(self) -> None:
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        logger.debug("Mock connection close")

    # Helper methods for testing
    def _rows(self, table: str) -> list[tuple]:
        """Rows of a mock table (for test assertions)."""
        return list(self._storage[table])

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()


class MockSnowflakeConnectionPool:
    """Pool stand-in that hands out one shared mock connection."""

    def __init__(self, connection: Optional[MockSnowflakeConnection] = None) -> None:
        self.connection = connection or MockSnowflakeConnection()

    @contextmanager
    def get_connection(self) -> Generator[MockSnowflakeConnection, None, None]:
        yield self.connection

    def close(self) -> None:
        self.connection.close()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_connection_pool(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
    pool_size: int = 5,
):
    """
    Create the catalog connection pool.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return an in-memory pool for testing
        pool_size: Idle connections kept for reuse

    Returns:
        SnowflakeConnectionPool or MockSnowflakeConnectionPool
    """
    if mock_mode:
        return MockSnowflakeConnectionPool()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return SnowflakeConnectionPool(config, pool_size=pool_size)
