"""Persistence for documents and their embedded chunks"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from filing_assistant.config import DATABASE_URL
from filing_assistant.exceptions import ChunkStoreError
from filing_assistant.models.document_chunk import Document, DocumentChunk

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default="upload")
    # "metadata" is reserved on declarative classes
    doc_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)


class ChunkRecord(Base):
    __tablename__ = "document_chunks"
    # Chunk ids are never reused, so id order is insertion order
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_document_chunk_index"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)


def to_bytes(embedding: np.ndarray) -> bytes:
    return np.asarray(embedding, dtype=np.float32).tobytes()


def from_bytes(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def _to_document(record: DocumentRecord) -> Document:
    return Document(
        id=record.id,
        title=record.title,
        source=record.source,
        metadata=dict(record.doc_metadata or {}),
        created_at=record.created_at,
    )


class ChunkStore:
    """SQLAlchemy-backed store for documents and chunk embeddings"""

    def __init__(self, database_url: str = DATABASE_URL, echo: bool = False):
        kwargs: Dict[str, Any] = {"echo": echo}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url == "sqlite://":
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **kwargs)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self, action: str) -> Iterator[Session]:
        """Transactional session; database errors surface as ChunkStoreError"""
        try:
            with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            raise ChunkStoreError(f"{action} failed: {e}") from e

    def create_document(
        self, title: str, source: str = "upload", metadata: Optional[Dict[str, Any]] = None
    ) -> Document:
        record = DocumentRecord(title=title, source=source, doc_metadata=dict(metadata or {}))
        with self.session("Insert document") as session:
            session.add(record)
            session.flush()
            document = _to_document(record)
        logger.info("Created document %s (%s)", document.id, title)
        return document

    def get_document(self, document_id: str) -> Optional[Document]:
        with self.session("Fetch document") as session:
            record = session.get(DocumentRecord, document_id)
            return _to_document(record) if record else None

    def list_documents(self, limit: Optional[int] = None) -> List[Document]:
        """Documents newest first"""
        stmt = select(DocumentRecord).order_by(
            DocumentRecord.created_at.desc(), DocumentRecord.id.desc()
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.session("List documents") as session:
            return [_to_document(r) for r in session.scalars(stmt)]

    def next_chunk_index(self, document_id: str, session: Optional[Session] = None) -> int:
        stmt = select(func.max(ChunkRecord.chunk_index)).where(ChunkRecord.document_id == document_id)
        if session is not None:
            current = session.scalar(stmt)
        else:
            with self.session("Fetch chunk index") as s:
                current = s.scalar(stmt)
        return 0 if current is None else current + 1

    def insert_chunks(self, document_id: str, chunks: Sequence[DocumentChunk]) -> List[int]:
        """Append one batch of embedded chunks in a single transaction.

        Indices must continue the document's contiguous sequence. A failure
        leaves previously inserted batches untouched.
        """
        if not chunks:
            return []
        for chunk in chunks:
            if chunk.embedding is None:
                raise ValueError(f"Chunk {chunk.chunk_index} of {document_id} has no embedding")

        with self.session(f"Insert chunks for {document_id}") as session:
            expected = self.next_chunk_index(document_id, session)
            indices = [c.chunk_index for c in chunks]
            if indices != list(range(expected, expected + len(chunks))):
                raise ValueError(
                    f"Chunk indices {indices[0]}..{indices[-1]} do not continue at {expected} for {document_id}"
                )

            records = [
                ChunkRecord(
                    document_id=document_id,
                    chunk_index=c.chunk_index,
                    content=c.content,
                    embedding=to_bytes(c.embedding),
                )
                for c in chunks
            ]
            session.add_all(records)
            session.flush()
            ids = [r.id for r in records]

        for chunk, chunk_id in zip(chunks, ids):
            chunk.id = chunk_id
        return ids

    def get_chunks(self, document_id: str, limit: Optional[int] = None) -> List[DocumentChunk]:
        """Chunks of one document ordered by chunk_index"""
        stmt = (
            select(ChunkRecord)
            .where(ChunkRecord.document_id == document_id)
            .order_by(ChunkRecord.chunk_index)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.session(f"Fetch chunks for {document_id}") as session:
            return [
                DocumentChunk(
                    id=r.id,
                    document_id=r.document_id,
                    chunk_index=r.chunk_index,
                    content=r.content,
                    embedding=from_bytes(r.embedding),
                )
                for r in session.scalars(stmt)
            ]

    def get_document_text(self, document_id: str, max_chunks: int, max_chars: int) -> str:
        """Leading chunks joined by blank lines, cut to max_chars"""
        chunks = self.get_chunks(document_id, limit=max_chunks)
        return "\n\n".join(c.content for c in chunks)[:max_chars]

    def get_chunks_by_ids(self, chunk_ids: Sequence[int]) -> Dict[int, DocumentChunk]:
        if not chunk_ids:
            return {}
        stmt = select(ChunkRecord).where(ChunkRecord.id.in_(list(chunk_ids)))
        with self.session("Fetch chunks by id") as session:
            return {
                r.id: DocumentChunk(
                    id=r.id,
                    document_id=r.document_id,
                    chunk_index=r.chunk_index,
                    content=r.content,
                )
                for r in session.scalars(stmt)
            }

    def iter_embeddings(self, after_id: int = 0) -> List[Tuple[int, str, np.ndarray]]:
        """(chunk_id, document_id, embedding) rows with id > after_id in insertion order"""
        stmt = (
            select(ChunkRecord.id, ChunkRecord.document_id, ChunkRecord.embedding)
            .where(ChunkRecord.id > after_id)
            .order_by(ChunkRecord.id)
        )
        with self.session("Load embeddings") as session:
            return [(row.id, row.document_id, from_bytes(row.embedding)) for row in session.execute(stmt)]

    def chunk_stats(self) -> Tuple[int, int]:
        """(row count, max chunk id) over all chunks"""
        with self.session("Count chunks") as session:
            count, max_id = session.execute(select(func.count(ChunkRecord.id), func.max(ChunkRecord.id))).one()
        return count, max_id or 0

    def count_chunks(self, document_id: Optional[str] = None) -> int:
        stmt = select(func.count(ChunkRecord.id))
        if document_id is not None:
            stmt = stmt.where(ChunkRecord.document_id == document_id)
        with self.session("Count chunks") as session:
            return session.scalar(stmt) or 0

    def delete_document(self, document_id: str) -> bool:
        """Remove a document and all of its chunks"""
        with self.session(f"Delete document {document_id}") as session:
            session.execute(delete(ChunkRecord).where(ChunkRecord.document_id == document_id))
            result = session.execute(delete(DocumentRecord).where(DocumentRecord.id == document_id))
            deleted = result.rowcount > 0
        if deleted:
            logger.info("Deleted document %s", document_id)
        return deleted
