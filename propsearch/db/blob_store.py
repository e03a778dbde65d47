"""Versioned single-blob table behind the key-value service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, Integer, MetaData, Table, create_engine, delete, func, insert, select
from sqlalchemy.pool import StaticPool

from ..utils.logging import get_logger

LOGGER = get_logger("db.blob_store")

TABLE_NAME = "properties"


class BlobStore:
    """Stores whole blobs keyed by version; reads always return the highest version."""

    def __init__(self, url: str, table_name: str = TABLE_NAME) -> None:
        kwargs: Dict[str, Any] = {}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        self.engine = create_engine(url, **kwargs)
        self.metadata = MetaData()
        self.table = Table(
            table_name,
            self.metadata,
            Column("version", Integer, primary_key=True),
            Column("blob", JSON, nullable=False),
        )
        self.metadata.create_all(self.engine)
        LOGGER.info("blob_store_ready dialect=%s table=%s", self.engine.dialect.name, table_name)

    def latest_version(self) -> Optional[int]:
        with self.engine.connect() as conn:
            return conn.execute(select(func.max(self.table.c.version))).scalar()

    def fetch(self) -> Optional[Dict[str, Any]]:
        latest = select(func.max(self.table.c.version)).scalar_subquery()
        query = select(self.table.c.blob).where(self.table.c.version == latest).limit(1)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar()

    def persist(self, data: Dict[str, Any], version: Optional[int] = None) -> int:
        """Write ``data`` at ``version``, defaulting to the current latest version (or 0)."""

        if version is None:
            version = self.latest_version() or 0
        with self.engine.begin() as conn:
            conn.execute(delete(self.table).where(self.table.c.version == version))
            conn.execute(insert(self.table).values(version=version, blob=data))
        LOGGER.info("blob_persisted version=%s entries=%s", version, len(data))
        return version

    def info(self) -> Dict[str, Any]:
        return {
            "dialect": self.engine.dialect.name,
            "server_version": ".".join(str(part) for part in (self.engine.dialect.server_version_info or ())),
            "latest_version": self.latest_version(),
        }


__all__ = ["BlobStore", "TABLE_NAME"]
