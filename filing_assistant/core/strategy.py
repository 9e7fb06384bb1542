"""Buy/Sell/Hold recommendations from forecasts, sentiment and anomalies"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from filing_assistant.config import YAHOO_RANGE, load_ticker_companies
from filing_assistant.models.analysis import Anomaly, CompanySentiment, StrategyRecommendation
from filing_assistant.models.market import TickerForecast

logger = logging.getLogger(__name__)

_CORPORATE_SUFFIXES = {"inc", "incorporated", "corp", "corporation", "co", "company", "ltd", "limited", "plc"}


def company_key(name: str) -> str:
    """Comparable company key: lower-case, no punctuation, no trailing corporate suffixes"""
    words = re.sub(r"[^\w\s]", "", (name or "").lower()).split()
    while words and words[-1] in _CORPORATE_SUFFIXES:
        words.pop()
    return " ".join(words)


class StrategyAdvisor:
    """Joins per-ticker forecasts with document-level signals"""

    def __init__(self, ticker_companies: Optional[Dict[str, List[str]]] = None):
        self.ticker_companies = ticker_companies if ticker_companies is not None else load_ticker_companies()

    def company_keys(self, symbol: str) -> set:
        names = self.ticker_companies.get(symbol) or [symbol]
        return {company_key(n) for n in names if company_key(n)}

    def find_sentiment(self, symbol: str, sentiments: Sequence[CompanySentiment]) -> float:
        keys = self.company_keys(symbol)
        for company in sentiments:
            if company_key(company.name) in keys:
                return company.score
        return 0.0

    def count_high_anomalies(self, symbol: str, anomalies: Sequence[Anomaly]) -> int:
        keys = self.company_keys(symbol)
        return sum(1 for a in anomalies if a.severity == "high" and company_key(a.company or "") in keys)

    def recommend(
        self,
        tickers: Sequence[str],
        forecasts: Sequence[TickerForecast],
        sentiments: Sequence[CompanySentiment] = (),
        anomalies: Sequence[Anomaly] = (),
        document_titles: Sequence[str] = (),
    ) -> List[StrategyRecommendation]:
        by_symbol = {f.symbol: f for f in forecasts}
        recommendations = []
        for symbol in tickers:
            forecast = by_symbol.get(symbol)
            metrics = forecast.metrics if forecast else None
            exp = metrics.expected_change_pct if metrics else 0.0
            vol = metrics.volatility if metrics else 0.0
            trend = metrics.trend if metrics else "flat"
            sent = self.find_sentiment(symbol, sentiments)
            high = self.count_high_anomalies(symbol, anomalies)

            decision = "Hold"
            if exp >= 5 and sent > 0.1 and high == 0:
                decision = "Buy"
            elif exp <= -3 or sent < -0.2 or high > 0:
                decision = "Sell"

            confidence = 60.0
            confidence += max(-10.0, min(10.0, exp / 2))
            confidence += sent * 20
            if high > 0:
                confidence -= 15
            if trend == "up":
                confidence += 5
            elif trend == "down":
                confidence -= 5
            confidence = max(10.0, min(95.0, confidence))

            reasons = [
                f"30d forecast: {exp:.2f}% ({trend} trend)",
                f"Volatility (σ): {vol:.2f}%",
                f"Sentiment: {sent:.2f}",
            ]
            if high > 0:
                noun = "anomalies" if high > 1 else "anomaly"
                reasons.append(f"{high} high-severity {noun} detected in filings")

            sources = [f"Market data: Yahoo Finance ({YAHOO_RANGE} daily) for {symbol}"]
            if document_titles:
                listed = ", ".join(document_titles[:5])
                more = "…" if len(document_titles) > 5 else ""
                sources.append(f"Uploaded documents ({len(document_titles)}): {listed}{more}")

            recommendations.append(
                StrategyRecommendation(
                    symbol=symbol,
                    decision=decision,
                    confidence=round(confidence, 2),
                    expected_change_pct=exp,
                    volatility=vol,
                    sentiment=sent,
                    trend=trend,
                    high_anomalies=high,
                    reasons=reasons,
                    sources=sources,
                )
            )
            logger.debug("Strategy %s: %s (%.1f)", symbol, decision, confidence)
        return recommendations
