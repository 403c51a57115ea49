from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import requests
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedbrief.db.models import Digest
from feedbrief.services.errors import PersistenceError
from feedbrief.services.http_fetch import HttpFetcher

logger = logging.getLogger(__name__)


class DigestSink(Protocol):
    def create_digest(self, digest_type: str, content: str, metadata: dict[str, Any]) -> int: ...


class SqlDigestSink:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create_digest(self, digest_type: str, content: str, metadata: dict[str, Any]) -> int:
        try:
            with Session(self.engine) as session:
                row = Digest(type=digest_type, content=content, metadata_json=metadata or {})
                session.add(row)
                session.commit()
                return row.id
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not store digest: {e}") from e


class HttpDigestSink:
    """
    Posts the digest to `{api_base}/api/digests` with a bearer key.
    The endpoint answers 201 with the new id.
    """

    def __init__(self, api_base: str, api_key: str, http: HttpFetcher | None = None):
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.http = http or HttpFetcher.from_settings()

    def create_digest(self, digest_type: str, content: str, metadata: dict[str, Any]) -> int:
        body = {"type": digest_type, "content": content, "metadata": json.dumps(metadata or {}, ensure_ascii=False)}
        try:
            resp = self.http.post_json(
                f"{self.api_base}/api/digests",
                body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except requests.RequestException as e:
            raise PersistenceError(f"digest API unreachable: {e}") from e

        if resp.status != 201:
            raise PersistenceError(f"digest API returned HTTP {resp.status}: {resp.body[:300]}")
        try:
            return int(resp.json()["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError(f"digest API response has no id: {resp.body[:300]}") from e
