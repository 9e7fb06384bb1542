"""Data models for documents, chunks and retrieval results"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass
class Document:
    """An uploaded filing once its text has been extracted"""
    id: str
    title: str
    source: str = "upload"
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass
class DocumentChunk:
    """Class to store document chunks with their embedding"""
    document_id: str
    chunk_index: int
    content: str
    embedding: Optional[np.ndarray] = None
    id: Optional[int] = None


@dataclass
class RetrievalMatch:
    """A stored chunk scored against a query embedding"""
    chunk_id: int
    document_id: str
    chunk_index: int
    content: str
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.chunk_id,
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "similarity": self.similarity,
            "content": self.content,
        }


@dataclass
class AnswerResult:
    """Model answer plus the chunks it was conditioned on"""
    answer: str
    citations: List[RetrievalMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "citations": [c.to_dict() for c in self.citations],
        }


@dataclass
class UploadedDocument:
    """Raw upload handed to the ingestion pipeline"""
    name: str
    data: bytes
    content_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.data)


class IngestionState(str, Enum):
    QUEUED = "Queued"
    REJECTED = "Only PDFs allowed"
    EXTRACTING = "Extracting..."
    NO_TEXT = "No text found"
    INDEXING = "Indexing"
    EMBEDDING = "Embedding"
    INDEXED = "Indexed"
    EMBEDDING_FAILED = "Embedding failed"
    INSERT_FAILED = "Error during chunk insert"
    FAILED = "Processing failed"


TERMINAL_FAILURES = {
    IngestionState.REJECTED,
    IngestionState.NO_TEXT,
    IngestionState.EMBEDDING_FAILED,
    IngestionState.INSERT_FAILED,
    IngestionState.FAILED,
}


@dataclass
class IngestionStatus:
    """Caller-visible progress of one uploaded file"""
    file_name: str
    size: int = 0
    state: IngestionState = IngestionState.QUEUED
    document_id: Optional[str] = None
    total_chunks: int = 0
    embedded_chunks: int = 0
    progress: int = 0
    message: str = ""
    tickers: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.state in TERMINAL_FAILURES

    @property
    def partially_indexed(self) -> bool:
        """True when a failure left some chunks of the document stored"""
        return self.failed and self.embedded_chunks > 0

    @property
    def label(self) -> str:
        if self.state == IngestionState.INDEXING:
            return f"Indexing {self.total_chunks} chunks..."
        if self.state == IngestionState.EMBEDDING:
            return f"Embedding {self.embedded_chunks}/{self.total_chunks}"
        if self.partially_indexed:
            return f"{self.state.value} ({self.embedded_chunks}/{self.total_chunks} chunks stored)"
        return self.state.value
