"""Main orchestrator: ingestion, Q&A and the analysis features"""

import hashlib
import logging
from typing import Callable, Iterable, List, Optional

from tqdm import tqdm

from filing_assistant.config import (
    DEFAULT_TOP_K,
    FORECAST_HORIZON_DAYS,
    MAX_TOP_K,
    MIN_TOP_K,
    SUMMARY_QUESTION,
    UI_TOP_K,
)
from filing_assistant.core.anomaly_detector import AnomalyDetector
from filing_assistant.core.answer_generator import AnswerGenerator
from filing_assistant.core.embedding_manager import EmbeddingManager
from filing_assistant.core.forecast_engine import ForecastEngine, normalize_tickers
from filing_assistant.core.llm_client import ChatModel
from filing_assistant.core.pdf_processor import PDFProcessor, is_pdf
from filing_assistant.core.sentiment_analyzer import SentimentAnalyzer
from filing_assistant.core.strategy import StrategyAdvisor
from filing_assistant.core.text_chunker import TextChunker
from filing_assistant.core.ticker_extractor import extract_tickers
from filing_assistant.exceptions import (
    ChunkStoreError,
    EmbeddingError,
    FilingAssistantError,
    ValidationError,
)
from filing_assistant.models.analysis import Anomaly, CompanySentiment, StrategyRecommendation
from filing_assistant.models.document_chunk import (
    AnswerResult,
    Document,
    IngestionState,
    IngestionStatus,
    UploadedDocument,
)
from filing_assistant.models.market import TickerForecast
from filing_assistant.retrieval.chunk_store import ChunkStore
from filing_assistant.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)

StatusCallback = Callable[[IngestionStatus], None]


class RAGSystem:
    """Wires the chunker, embeddings, store and models together"""

    def __init__(
        self,
        chunk_store: Optional[ChunkStore] = None,
        embedding_manager: Optional[EmbeddingManager] = None,
        chat_model: Optional[ChatModel] = None,
        forecast_engine: Optional[ForecastEngine] = None,
        strategy_advisor: Optional[StrategyAdvisor] = None,
        chunker: Optional[TextChunker] = None,
        pdf_processor: Optional[PDFProcessor] = None,
    ):
        self.chunk_store = chunk_store or ChunkStore()
        self.embedding_manager = embedding_manager or EmbeddingManager()
        self.chat_model = chat_model or ChatModel()
        self.vector_store = VectorStore(self.chunk_store)
        self.answer_generator = AnswerGenerator(self.embedding_manager, self.vector_store, self.chat_model)
        self.sentiment_analyzer = SentimentAnalyzer(self.chunk_store, self.chat_model)
        self.anomaly_detector = AnomalyDetector(self.chunk_store, self.chat_model)
        self.forecast_engine = forecast_engine or ForecastEngine()
        self.strategy_advisor = strategy_advisor or StrategyAdvisor()
        self.chunker = chunker or TextChunker()
        self.pdf_processor = pdf_processor or PDFProcessor()

    # Ingestion

    def ingest_uploads(
        self, uploads: Iterable[UploadedDocument], on_status: Optional[StatusCallback] = None
    ) -> List[IngestionStatus]:
        """Ingest files one after another; a failing file never stops the next"""
        uploads = list(uploads)
        statuses = [IngestionStatus(file_name=u.name, size=u.size) for u in uploads]
        for upload, status in zip(uploads, statuses):
            self._notify(status, on_status)

        for upload, status in zip(uploads, statuses):
            try:
                self._ingest_upload(upload, status, on_status)
            except FilingAssistantError as e:
                logger.error("Process upload error for %s: %s", upload.name, e)
                self._update(status, on_status, state=IngestionState.FAILED, message=str(e))

        indexed = sum(1 for s in statuses if s.state == IngestionState.INDEXED)
        logger.info("Indexing complete: %d of %d document(s) indexed", indexed, len(statuses))
        return statuses

    def _ingest_upload(self, upload: UploadedDocument, status: IngestionStatus, on_status):
        if not is_pdf(upload.name, upload.content_type):
            logger.warning("Rejected %s: unsupported type %r", upload.name, upload.content_type)
            self._update(status, on_status, state=IngestionState.REJECTED)
            return

        self._update(status, on_status, state=IngestionState.EXTRACTING, progress=5)
        extracted = self.pdf_processor.extract_text(upload.data, upload.name)
        if not extracted.text:
            self._update(status, on_status, state=IngestionState.NO_TEXT)
            return

        status.tickers = extract_tickers(extracted.text, upload.name)
        metadata = {
            "size": upload.size,
            "pages": extracted.pages,
            "sha256": hashlib.sha256(upload.data).hexdigest(),
        }
        self.ingest_text(upload.name, extracted.text, metadata, status=status, on_status=on_status)

    def ingest_text(
        self,
        title: str,
        text: str,
        metadata: Optional[dict] = None,
        status: Optional[IngestionStatus] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> IngestionStatus:
        """Create a document, then chunk, embed and store it batch by batch.

        Batches run sequentially. An embedding or insert failure stops the
        remaining batches; chunks stored so far stay and the status reports
        how many were embedded.
        """
        status = status or IngestionStatus(file_name=title)
        if not text or not text.strip():
            self._update(status, on_status, state=IngestionState.NO_TEXT)
            return status

        # Step 1: persist the document row
        document = self.chunk_store.create_document(title, source="upload", metadata=metadata)
        status.document_id = document.id

        # Step 2: chunk
        chunks = self.chunker.create_chunks(document.id, text)
        self._update(status, on_status, state=IngestionState.INDEXING, total_chunks=len(chunks), progress=20)

        # Step 3: embed + insert per batch
        batches = list(self.embedding_manager.batches(chunks))
        for start, batch in tqdm(batches, desc=f"embedding {title}", disable=len(batches) < 2):
            try:
                embeddings = self.embedding_manager.embed_passages([c.content for c in batch])
            except EmbeddingError as e:
                logger.error("embed-text error for %s (document %s, batch at %d): %s", title, document.id, start, e)
                self._update(status, on_status, state=IngestionState.EMBEDDING_FAILED, message=str(e))
                return status

            for chunk, embedding in zip(batch, embeddings):
                chunk.embedding = embedding
            try:
                self.chunk_store.insert_chunks(document.id, batch)
            except (ChunkStoreError, ValueError) as e:
                logger.error("Insert chunks error for %s (document %s, batch at %d): %s", title, document.id, start, e)
                self._update(status, on_status, state=IngestionState.INSERT_FAILED, message=str(e))
                return status

            completed = start + len(batch)
            progress = min(95, round(20 + completed / len(chunks) * 75))
            self._update(
                status, on_status, state=IngestionState.EMBEDDING, embedded_chunks=completed, progress=progress
            )

        self._update(status, on_status, state=IngestionState.INDEXED, progress=100)
        logger.info("Document indexed: %s (%s, %d chunks)", title, document.id, len(chunks))
        return status

    def _update(self, status: IngestionStatus, on_status: Optional[StatusCallback], **changes):
        for key, value in changes.items():
            setattr(status, key, value)
        self._notify(status, on_status)

    @staticmethod
    def _notify(status: IngestionStatus, on_status: Optional[StatusCallback]):
        if on_status is not None:
            on_status(status)

    # Q&A

    def ask(
        self,
        question: str,
        document_id: Optional[str] = None,
        top_k: Optional[int] = DEFAULT_TOP_K,
        extra_context: Optional[str] = None,
    ) -> AnswerResult:
        if not isinstance(question, str) or not question.strip():
            raise ValidationError("'question' is required")
        if top_k is None:
            top_k = DEFAULT_TOP_K
        if top_k < MIN_TOP_K:
            raise ValidationError(f"top_k must be at least {MIN_TOP_K}, got {top_k}")
        top_k = min(top_k, MAX_TOP_K)
        return self.answer_generator.answer(
            question.strip(), document_id=document_id, top_k=top_k, extra_context=extra_context
        )

    def summarize(self, document_id: str) -> str:
        """Executive summary of one indexed document"""
        if not document_id:
            raise ValidationError("Please finish indexing before summarizing")
        return self.ask(SUMMARY_QUESTION, document_id=document_id, top_k=UI_TOP_K).answer

    # Analysis

    def analyze_sentiment(self, limit_docs: Optional[int] = None) -> List[CompanySentiment]:
        return self.sentiment_analyzer.analyze(limit_docs)

    def detect_anomalies(self, limit_docs: Optional[int] = None) -> List[Anomaly]:
        return self.anomaly_detector.detect(limit_docs)

    def forecast(self, tickers: Optional[Iterable[str]] = None, horizon_days: int = FORECAST_HORIZON_DAYS) -> List[TickerForecast]:
        return self.forecast_engine.forecast_many(tickers, horizon_days)

    def build_strategy(self, tickers: Iterable[str]) -> List[StrategyRecommendation]:
        """Forecast, sentiment and anomaly signals per ticker.

        Sentiment and anomaly failures degrade to empty signals; the forecast
        itself already degrades per ticker.
        """
        symbols = normalize_tickers(tickers)
        if not symbols:
            raise ValidationError("Please enter at least one ticker")

        forecasts = self.forecast(symbols)
        try:
            sentiments = self.analyze_sentiment()
        except FilingAssistantError as e:
            logger.warning("sentiment error: %s", e)
            sentiments = []
        try:
            anomalies = self.detect_anomalies()
        except FilingAssistantError as e:
            logger.warning("anomalies error: %s", e)
            anomalies = []

        titles = [d.title for d in self.list_documents()]
        return self.strategy_advisor.recommend(symbols, forecasts, sentiments, anomalies, titles)

    # Documents

    def list_documents(self, limit: Optional[int] = None) -> List[Document]:
        return self.chunk_store.list_documents(limit=limit)

    def delete_document(self, document_id: str) -> bool:
        return self.chunk_store.delete_document(document_id)

    def get_system_stats(self) -> dict:
        """Get system statistics"""
        documents = self.list_documents()
        per_document = {d.id: self.chunk_store.count_chunks(d.id) for d in documents}
        return {
            "total_documents": len(documents),
            "total_chunks": self.chunk_store.count_chunks(),
            "documents": per_document,
            "model_name": self.embedding_manager.model_name,
        }
