"""
Shared test fixtures for the filing assistant test suite.

Provides: in-memory chunk store, deterministic embedding provider, canned chat
model, in-memory price source, PDF bytes factory and a fully wired RAGSystem.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional

import fitz
import numpy as np
import pytest

from filing_assistant.config import ANOMALY_SYSTEM_PROMPT, SENTIMENT_SYSTEM_PROMPT
from filing_assistant.core.embedding_manager import EmbeddingManager
from filing_assistant.core.forecast_engine import ForecastEngine
from filing_assistant.core.rag_system import RAGSystem
from filing_assistant.core.strategy import StrategyAdvisor
from filing_assistant.core.text_chunker import TextChunker
from filing_assistant.exceptions import EmbeddingError, LLMError, MarketDataError
from filing_assistant.models.document_chunk import DocumentChunk
from filing_assistant.models.market import SeriesPoint
from filing_assistant.retrieval.chunk_store import ChunkStore

VOCAB = ("revenue", "debt", "margin", "cash", "risk", "growth", "walmart", "adobe")


class KeywordEmbedder:
    """Bag-of-keywords vectors: identical text always maps to the same vector."""

    model_name = "keyword-test"

    def __init__(self, fail_on_call: Optional[int] = None):
        self.calls: List[List[str]] = []
        self.fail_on_call = fail_on_call

    def embed(self, texts: List[str]) -> np.ndarray:
        self.calls.append(list(texts))
        if self.fail_on_call == len(self.calls):
            raise EmbeddingError("provider unavailable")
        rows = []
        for text in texts:
            lowered = text.lower()
            rows.append([lowered.count(word) for word in VOCAB] + [0.1])
        return np.asarray(rows, dtype="float32")


class CannedChatModel:
    """Replies keyed by the first system prompt; records every request."""

    def __init__(self, replies: Optional[Dict[str, str]] = None, default: str = "Canned answer.", error=None):
        self.replies = replies or {}
        self.default = default
        self.error = error
        self.requests: List[dict] = []

    def complete(self, messages, temperature, max_tokens=None) -> str:
        self.requests.append({"messages": messages, "temperature": temperature})
        if self.error is not None:
            raise self.error
        return self.replies.get(messages[0]["content"], self.default)


class InMemoryPriceSource:
    def __init__(self, series: Dict[str, List[SeriesPoint]]):
        self.series = series

    def fetch_series(self, symbol: str) -> List[SeriesPoint]:
        if symbol not in self.series:
            raise MarketDataError(f"No time series data for {symbol}")
        return self.series[symbol]


def daily_series(closes: List[float], start: date = date(2024, 1, 1)) -> List[SeriesPoint]:
    return [
        SeriesPoint(date=(start + timedelta(days=i)).isoformat(), close=float(c))
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def chunk_store() -> ChunkStore:
    """Provide an empty in-memory SQLite chunk store."""
    return ChunkStore("sqlite://")


@pytest.fixture
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def keyword_vector():
    """Provide the unit vector KeywordEmbedder would produce for a text."""

    def _vector(text: str) -> List[float]:
        embedding = KeywordEmbedder().embed([text])[0]
        return (embedding / np.linalg.norm(embedding)).tolist()

    return _vector


@pytest.fixture
def embedding_manager(keyword_embedder: KeywordEmbedder) -> EmbeddingManager:
    """Provide an embedding manager that sends two texts per batch."""
    return EmbeddingManager(keyword_embedder, batch_size=2)


@pytest.fixture
def failing_embedding_manager() -> EmbeddingManager:
    """Provide an embedding manager whose provider fails on the second batch."""
    return EmbeddingManager(KeywordEmbedder(fail_on_call=2), batch_size=2)


@pytest.fixture
def chat_model() -> CannedChatModel:
    return CannedChatModel(
        replies={
            SENTIMENT_SYSTEM_PROMPT: '{"companies": [{"name": "walmart inc", "score": 0.5}]}',
            ANOMALY_SYSTEM_PROMPT: (
                '{"anomalies": [{"company": "Adobe", "metric": "Deferred revenue", '
                '"change": "-12%", "severity": "high"}]}'
            ),
        }
    )


@pytest.fixture
def failing_chat_model() -> CannedChatModel:
    return CannedChatModel(error=LLMError("OpenAI request failed: quota"))


@pytest.fixture
def price_source() -> InMemoryPriceSource:
    return InMemoryPriceSource(
        {
            "WMT": daily_series([100 + 2 * i for i in range(100)]),
            "ADBE": daily_series([500 - 3 * i for i in range(100)]),
            "MCD": daily_series([250.0] * 100),
        }
    )


@pytest.fixture
def make_pdf():
    """Provide a factory building real PDF bytes, one string per page."""

    def _make(pages: List[str]) -> bytes:
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            y = 72
            for line in filter(None, text.split("\n")):
                page.insert_text((72, y), line, fontsize=10)
                y += 14
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def store_document(chunk_store: ChunkStore):
    """Provide a helper storing a document whose chunks carry explicit vectors."""

    def _store(title: str, contents: List[str], vectors: List[List[float]]) -> str:
        document = chunk_store.create_document(title)
        chunks = [
            DocumentChunk(
                document_id=document.id,
                chunk_index=i,
                content=content,
                embedding=np.asarray(vector, dtype="float32"),
            )
            for i, (content, vector) in enumerate(zip(contents, vectors))
        ]
        chunk_store.insert_chunks(document.id, chunks)
        return document.id

    return _store


@pytest.fixture
def rag_system(chunk_store, embedding_manager, chat_model, price_source) -> RAGSystem:
    """Provide a RAGSystem wired entirely to in-process fakes."""
    return RAGSystem(
        chunk_store=chunk_store,
        embedding_manager=embedding_manager,
        chat_model=chat_model,
        forecast_engine=ForecastEngine(price_source),
        strategy_advisor=StrategyAdvisor(
            {"WMT": ["Walmart"], "MCD": ["McDonald's"], "ADBE": ["Adobe"]}
        ),
        chunker=TextChunker(chunk_size=60, overlap=10),
    )
