"""
Snowflake repository for the media catalog.

The gallery has two collections, images and videos, stored as two tables
with the same shape. The repository:
1. Picks the table for a MediaKind
2. Encapsulates all SQL queries
3. Translates rows to MediaRecord and back

The application code never writes SQL directly.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID

from ....core.media.models import MediaKind, MediaListing, MediaRecord


logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
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
    database: str = "MEDIA_RELAY"
    schema: str = "CATALOG"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class CatalogError(Exception):
    """Raised when a catalog read or write fails."""
    pass


_TABLES = {
    MediaKind.IMAGE: "images",
    MediaKind.VIDEO: "videos",
}

_COLUMNS = "media_id, object_key, url, original_name, upload_date"


class MediaCatalogRepository:
    """
    Repository for gallery records.

    - insert: Append a committed upload to its collection
    - list_media: Both collections, newest first
    - list_keys: Every cataloged object key, for reconciliation

    No uniqueness is enforced on object_key; keys are unique because of
    how they are generated.
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def insert(self, record: MediaRecord, kind: MediaKind) -> None:
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                f"INSERT INTO {_TABLES[kind]} ({_COLUMNS}) VALUES (%s, %s, %s, %s, %s)",
                (
                    str(record.id),
                    record.key,
                    record.url,
                    record.original_name,
                    record.upload_date,
                ),
            )
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to insert media record",
                extra={"key": record.key, "kind": kind.value, "error": str(e)}
            )
            raise CatalogError(f"Insert failed: {e}") from e
        finally:
            cursor.close()

        logger.debug(
            "Inserted media record",
            extra={"key": record.key, "kind": kind.value}
        )

    def list_media(self) -> MediaListing:
        """Load all images and all videos, each sorted newest first."""
        return MediaListing(
            images=self._list_kind(MediaKind.IMAGE),
            videos=self._list_kind(MediaKind.VIDEO),
        )

    def list_keys(self) -> set[str]:
        cursor = self._conn.cursor()

        try:
            keys: set[str] = set()
            for table in _TABLES.values():
                cursor.execute(f"SELECT object_key FROM {table}")
                keys.update(row[0] for row in cursor.fetchall())
            return keys

        except Exception as e:
            logger.error("Failed to list catalog keys", extra={"error": str(e)})
            raise CatalogError(f"Key listing failed: {e}") from e
        finally:
            cursor.close()

    def ping(self) -> None:
        """Round-trip a trivial query; raises CatalogError if the database is unreachable."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        except Exception as e:
            raise CatalogError(f"Ping failed: {e}") from e
        finally:
            cursor.close()

    def _list_kind(self, kind: MediaKind) -> list[MediaRecord]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                f"SELECT {_COLUMNS} FROM {_TABLES[kind]} ORDER BY upload_date DESC"
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

        except Exception as e:
            logger.error(
                "Failed to list media records",
                extra={"kind": kind.value, "error": str(e)}
            )
            raise CatalogError(f"Listing failed: {e}") from e
        finally:
            cursor.close()

    def _row_to_record(self, row: tuple) -> MediaRecord:
        media_id, key, url, original_name, upload_date = row
        return MediaRecord(
            id=UUID(str(media_id)),
            key=key,
            url=url,
            original_name=original_name,
            upload_date=upload_date,
        )


class PooledMediaCatalog:
    """
    MediaCatalogRepository over a connection pool.

    Each operation checks out its own connection, so a catalog outage
    surfaces as CatalogError from the operation that needed the catalog,
    and requests that never touch it never hold a connection.
    """

    def __init__(self, pool) -> None:
        self._pool = pool

    def insert(self, record: MediaRecord, kind: MediaKind) -> None:
        self._run(lambda repo: repo.insert(record, kind))

    def list_media(self) -> MediaListing:
        return self._run(lambda repo: repo.list_media())

    def list_keys(self) -> set[str]:
        return self._run(lambda repo: repo.list_keys())

    def ping(self) -> None:
        self._run(lambda repo: repo.ping())

    def _run(self, operation):
        try:
            with self._pool.get_connection() as conn:
                return operation(MediaCatalogRepository(conn))
        except CatalogError:
            raise
        except Exception as e:
            logger.error("Catalog unavailable", extra={"error": str(e)})
            raise CatalogError(f"Catalog unavailable: {e}") from e
