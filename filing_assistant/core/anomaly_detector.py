"""Financial red-flag detection across stored filings"""

import logging
from typing import Iterable, List, Optional

from filing_assistant.config import (
    ANALYSIS_TEMPERATURE,
    ANOMALY_MAX_CHARS,
    ANOMALY_MAX_CHUNKS,
    ANOMALY_SYSTEM_PROMPT,
    ANOMALY_USER_PROMPT,
    DEFAULT_LIMIT_DOCS,
)
from filing_assistant.core.llm_client import ChatModel
from filing_assistant.exceptions import ChunkStoreError, LLMError
from filing_assistant.models.analysis import SEVERITIES, Anomaly
from filing_assistant.retrieval.chunk_store import ChunkStore
from filing_assistant.utils.json_utils import safe_parse_json

logger = logging.getLogger(__name__)


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def to_anomaly(raw: dict, document: str) -> Optional[Anomaly]:
    """Build an Anomaly from one model record; records without a metric are dropped"""
    if not isinstance(raw, dict):
        return None
    metric = _optional_str(raw.get("metric"))
    if not metric:
        return None
    severity = str(raw.get("severity") or "").strip().lower()
    return Anomaly(
        metric=metric,
        severity=severity if severity in SEVERITIES else "low",
        company=_optional_str(raw.get("company")),
        period=_optional_str(raw.get("period")),
        change=_optional_str(raw.get("change")),
        rationale=_optional_str(raw.get("rationale")),
        document=document,
    )


def deduplicate(anomalies: Iterable[Anomaly]) -> List[Anomaly]:
    """Keep the first anomaly per (company, metric, period, change), case-insensitive"""
    seen = {}
    for anomaly in anomalies:
        seen.setdefault(anomaly.dedup_key, anomaly)
    return list(seen.values())


class AnomalyDetector:
    def __init__(self, chunk_store: ChunkStore, chat_model: ChatModel):
        self.chunk_store = chunk_store
        self.chat_model = chat_model

    def scan_document(self, title: str, text: str) -> List[Anomaly]:
        messages = [
            {"role": "system", "content": ANOMALY_SYSTEM_PROMPT},
            {"role": "user", "content": ANOMALY_USER_PROMPT.format(title=title, text=text)},
        ]
        content = self.chat_model.complete(messages, temperature=ANALYSIS_TEMPERATURE)
        parsed = safe_parse_json(content) or {}
        records = parsed.get("anomalies")
        if not isinstance(records, list):
            return []
        return [a for a in (to_anomaly(r, title) for r in records) if a is not None]

    def detect(self, limit_docs: Optional[int] = None) -> List[Anomaly]:
        limit = limit_docs if limit_docs and limit_docs > 0 else DEFAULT_LIMIT_DOCS
        documents = self.chunk_store.list_documents(limit=limit)

        found: List[Anomaly] = []
        for doc in documents:
            try:
                text = self.chunk_store.get_document_text(doc.id, ANOMALY_MAX_CHUNKS, ANOMALY_MAX_CHARS)
            except ChunkStoreError as e:
                logger.error("Anomalies: chunks fetch failed for %s (%s): %s", doc.title, doc.id, e)
                continue
            if not text:
                continue

            try:
                found.extend(self.scan_document(doc.title, text))
            except LLMError as e:
                logger.error("Anomalies: model call failed for %s (%s): %s", doc.title, doc.id, e)

        results = deduplicate(found)
        logger.info("Found %d anomalies (%d before de-duplication)", len(results), len(found))
        return results
