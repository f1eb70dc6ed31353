"""
Repository implementations for Snowflake.

Repositories translate between domain models and database rows.
"""

from .media import CatalogError, MediaCatalogRepository, PooledMediaCatalog, SnowflakeConfig

__all__ = ["CatalogError", "MediaCatalogRepository", "PooledMediaCatalog", "SnowflakeConfig"]
