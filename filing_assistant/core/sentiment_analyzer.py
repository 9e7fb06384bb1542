"""Company sentiment scoring across stored filings"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from filing_assistant.config import (
    ANALYSIS_TEMPERATURE,
    DEFAULT_LIMIT_DOCS,
    SENTIMENT_MAX_CHARS,
    SENTIMENT_MAX_CHUNKS,
    SENTIMENT_SYSTEM_PROMPT,
    SENTIMENT_USER_PROMPT,
)
from filing_assistant.core.llm_client import ChatModel
from filing_assistant.exceptions import ChunkStoreError, LLMError
from filing_assistant.models.analysis import CompanySentiment
from filing_assistant.retrieval.chunk_store import ChunkStore
from filing_assistant.utils.json_utils import safe_parse_json

logger = logging.getLogger(__name__)

_ABBREVIATED_SUFFIX = re.compile(r"\b(inc|corp|ltd|co)\.?$", re.IGNORECASE)
_WORD_START = re.compile(r"(^|[\s\-])(\w)")


def normalize_company_name(name: str) -> str:
    """Canonical display name: 'apple inc' and 'Apple Inc.' both become 'Apple Inc.'"""
    name = " ".join(name.split()).lower()
    name = _ABBREVIATED_SUFFIX.sub(lambda m: m.group(1) + ".", name)
    return _WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), name)


def _to_score(value) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return max(-1.0, min(1.0, score))


def aggregate_sentiment(per_document: Iterable[Tuple[str, List[dict]]]) -> List[CompanySentiment]:
    """Average per-document scores per normalized company name, best first"""
    totals: Dict[str, Dict] = {}
    for title, companies in per_document:
        for company in companies:
            if not isinstance(company, dict) or not isinstance(company.get("name"), str):
                continue
            name = normalize_company_name(company["name"])
            if not name:
                continue
            entry = totals.setdefault(name.lower(), {"name": name, "total": 0.0, "count": 0, "documents": []})
            entry["total"] += _to_score(company.get("score"))
            entry["count"] += 1
            if title not in entry["documents"]:
                entry["documents"].append(title)

    results = [
        CompanySentiment(
            name=v["name"],
            score=round(v["total"] / max(1, v["count"]), 3),
            documents=v["documents"],
            count=v["count"],
        )
        for v in totals.values()
    ]
    results.sort(key=lambda c: c.score, reverse=True)
    return results


class SentimentAnalyzer:
    """Asks the chat model for per-company sentiment in each document"""

    def __init__(self, chunk_store: ChunkStore, chat_model: ChatModel):
        self.chunk_store = chunk_store
        self.chat_model = chat_model

    def score_document(self, title: str, text: str) -> List[dict]:
        messages = [
            {"role": "system", "content": SENTIMENT_SYSTEM_PROMPT},
            {"role": "user", "content": SENTIMENT_USER_PROMPT.format(title=title, text=text)},
        ]
        content = self.chat_model.complete(messages, temperature=ANALYSIS_TEMPERATURE)
        parsed = safe_parse_json(content) or {}
        companies = parsed.get("companies")
        return companies if isinstance(companies, list) else []

    def analyze(self, limit_docs: Optional[int] = None) -> List[CompanySentiment]:
        limit = limit_docs if limit_docs and limit_docs > 0 else DEFAULT_LIMIT_DOCS
        documents = self.chunk_store.list_documents(limit=limit)

        per_document = []
        for doc in documents:
            try:
                text = self.chunk_store.get_document_text(doc.id, SENTIMENT_MAX_CHUNKS, SENTIMENT_MAX_CHARS)
            except ChunkStoreError as e:
                logger.error("Sentiment: chunks fetch failed for %s (%s): %s", doc.title, doc.id, e)
                continue
            if not text:
                continue

            try:
                companies = self.score_document(doc.title, text)
            except LLMError as e:
                logger.error("Sentiment: model call failed for %s (%s): %s", doc.title, doc.id, e)
                continue
            per_document.append((doc.title, companies))

        results = aggregate_sentiment(per_document)
        logger.info("Sentiment scored %d companies across %d document(s)", len(results), len(documents))
        return results
