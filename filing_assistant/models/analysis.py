"""Sentiment, anomaly and strategy result models"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CompanySentiment:
    name: str
    score: float
    documents: List[str] = field(default_factory=list)
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


SEVERITIES = ("low", "medium", "high")


@dataclass
class Anomaly:
    metric: str
    severity: str = "low"
    company: Optional[str] = None
    period: Optional[str] = None
    change: Optional[str] = None
    rationale: Optional[str] = None
    document: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        return "|".join(
            [
                (self.company or "?").strip().lower(),
                self.metric.strip().lower(),
                (self.period or "").strip().lower(),
                (self.change or "").strip().lower(),
            ]
        )

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class StrategyRecommendation:
    symbol: str
    decision: str
    confidence: float
    expected_change_pct: float
    volatility: float
    sentiment: float
    trend: str
    high_anomalies: int = 0
    reasons: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "decision": self.decision,
            "confidence": self.confidence,
            "metrics": {
                "expectedChangePct": self.expected_change_pct,
                "volatility": self.volatility,
                "sentiment": self.sentiment,
                "trend": self.trend,
            },
            "reasons": list(self.reasons),
            "sources": list(self.sources),
        }
