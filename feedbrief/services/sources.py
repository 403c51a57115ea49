from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedbrief.db.models import Source
from feedbrief.models.schemas import SourceDescriptor
from feedbrief.services.errors import FetchError, PersistenceError
from feedbrief.services.http_fetch import HttpFetcher

logger = logging.getLogger(__name__)


class SourceRegistry(Protocol):
    def list_active_sources(self) -> list[SourceDescriptor]: ...


class SqlSourceRegistry:
    """Sources stored in the local `sources` table."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def list_active_sources(self) -> list[SourceDescriptor]:
        try:
            with Session(self.engine) as session:
                rows = session.scalars(
                    select(Source)
                    .where(Source.is_active.is_(True), Source.is_deleted.is_(False))
                    .order_by(Source.id)
                ).all()
                return [SourceDescriptor(id=r.id, name=r.name, type=r.type, config=r.config) for r in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not read sources: {e}") from e

    def add_source(self, name: str, type_: str, config: dict) -> int:
        with Session(self.engine) as session:
            src = Source(name=name, type=type_, config=config)
            session.add(src)
            session.commit()
            return src.id


class HttpSourceRegistry:
    """Sources served by a remote `GET {api_base}/api/sources` endpoint."""

    def __init__(self, api_base: str, http: HttpFetcher | None = None):
        self.api_base = api_base.rstrip("/")
        self.http = http or HttpFetcher.from_settings()

    def list_active_sources(self) -> list[SourceDescriptor]:
        data = self.http.get_json(f"{self.api_base}/api/sources")
        if not isinstance(data, list):
            raise FetchError("source registry returned a non-list payload")

        out: list[SourceDescriptor] = []
        for row in data:
            if not isinstance(row, dict) or not row.get("is_active") or row.get("is_deleted"):
                continue
            try:
                out.append(SourceDescriptor.model_validate(row))
            except ValueError as e:
                logger.warning("Skipping malformed source %r: %s", row.get("name"), e)
        return out
