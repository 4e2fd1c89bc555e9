"""
Metadata (document) store abstraction for Firestore, SQL databases and an
in-memory test implementation.
"""

from __future__ import annotations

import json
import time
import uuid
from datetime import datetime
from typing import Dict, Optional, Protocol

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shared.firebase_constants import OWNER_ID_FIELD


class MetadataStoreError(Exception):
    """Raised by a store when the backing database fails."""


class MetadataStore(Protocol):
    """Interface for document access, keyed by collection and document id."""

    def insert(self, collection: str, document: dict) -> str:
        ...

    def set(self, collection: str, doc_id: str, document: dict) -> None:
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def query_by_owner(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool = True,
    ) -> list[dict]:
        ...


def _sort_key(value):
    # Missing values sort last in descending order.
    if value is None:
        return (0, "")
    if isinstance(value, datetime):
        return (1, value.isoformat())
    return (1, value)


class InMemoryMetadataStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def insert(self, collection: str, document: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.collections.setdefault(collection, {})[doc_id] = dict(document)
        return doc_id

    def set(self, collection: str, doc_id: str, document: dict) -> None:
        self.collections.setdefault(collection, {})[doc_id] = dict(document)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        document = self.collections.get(collection, {}).get(doc_id)
        return dict(document) if document is not None else None

    def query_by_owner(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool = True,
    ) -> list[dict]:
        matches = [
            dict(doc)
            for doc in self.collections.get(collection, {}).values()
            if doc.get(OWNER_ID_FIELD) == owner_id
        ]
        return sorted(matches, key=lambda doc: _sort_key(doc.get(order_by)), reverse=descending)

    def count(self, collection: str) -> int:
        return len(self.collections.get(collection, {}))

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()


class FirestoreMetadataStore:
    """Firestore-backed store; uses the client from `firebase_admin.firestore`."""

    def __init__(self, client: firestore.Client):
        self._client = client

    def insert(self, collection: str, document: dict) -> str:
        try:
            _, ref = self._client.collection(collection).add(document)
        except google_exceptions.GoogleAPIError as exc:
            raise MetadataStoreError(str(exc)) from exc
        return ref.id

    def set(self, collection: str, doc_id: str, document: dict) -> None:
        try:
            self._client.collection(collection).document(doc_id).set(document)
        except google_exceptions.GoogleAPIError as exc:
            raise MetadataStoreError(str(exc)) from exc

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            snapshot = self._client.collection(collection).document(doc_id).get()
        except google_exceptions.GoogleAPIError as exc:
            raise MetadataStoreError(str(exc)) from exc
        return snapshot.to_dict() if snapshot.exists else None

    def query_by_owner(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool = True,
    ) -> list[dict]:
        direction = (
            firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        )
        query = (
            self._client.collection(collection)
            .where(filter=FieldFilter(OWNER_ID_FIELD, "==", owner_id))
            .order_by(order_by, direction=direction)
        )
        try:
            return [snapshot.to_dict() for snapshot in query.stream()]
        except google_exceptions.GoogleAPIError as exc:
            raise MetadataStoreError(str(exc)) from exc


def _to_json_document(document: dict) -> dict:
    return json.loads(json.dumps(document, default=_json_default))


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class SqlMetadataStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("A database URL is required for SqlMetadataStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def insert(self, collection: str, document: dict) -> str:
        doc_id = uuid.uuid4().hex
        self._write(collection, doc_id, document)
        return doc_id

    def set(self, collection: str, doc_id: str, document: dict) -> None:
        self._write(collection, doc_id, document)

    def _write(self, collection: str, doc_id: str, document: dict) -> None:
        data = _to_json_document(document)
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                if row:
                    row.data = data
                    row.owner_id = data.get(OWNER_ID_FIELD)
                else:
                    session.add(
                        DocumentRow(
                            collection=collection,
                            doc_id=doc_id,
                            owner_id=data.get(OWNER_ID_FIELD),
                            data=data,
                            created_at=time.time(),
                        )
                    )
                session.commit()
        except SQLAlchemyError as exc:
            raise MetadataStoreError(str(exc)) from exc

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                return dict(row.data) if row else None
        except SQLAlchemyError as exc:
            raise MetadataStoreError(str(exc)) from exc

    def query_by_owner(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool = True,
    ) -> list[dict]:
        stmt = select(DocumentRow).where(
            DocumentRow.collection == collection,
            DocumentRow.owner_id == owner_id,
        )
        try:
            with self.Session() as session:
                documents = [dict(row.data) for row in session.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            raise MetadataStoreError(str(exc)) from exc
        # Documents are schemaless JSON, so ordering by field happens here.
        return sorted(
            documents,
            key=lambda doc: _sort_key(doc.get(order_by)),
            reverse=descending,
        )


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=True, index=True)
    data = Column("document", JSON, nullable=False)
    created_at = Column(Float, nullable=False)
