"""Price series and forecast result models"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class SeriesPoint:
    date: str
    close: float


@dataclass
class ForecastPoint:
    date: str
    predicted: float


@dataclass
class ForecastMetrics:
    last_close: float = 0.0
    trend: str = "flat"
    expected_change_pct: float = 0.0
    volatility: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastClose": self.last_close,
            "trend": self.trend,
            "expectedChangePct": self.expected_change_pct,
            "volatility": self.volatility,
        }


@dataclass
class TickerForecast:
    """Forecast for one ticker; a failed ticker carries empty series and zero metrics"""
    symbol: str
    history: List[SeriesPoint] = field(default_factory=list)
    forecast: List[ForecastPoint] = field(default_factory=list)
    metrics: ForecastMetrics = field(default_factory=ForecastMetrics)
    error: str = ""

    @property
    def failed(self) -> bool:
        return bool(self.error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "history": [{"date": p.date, "close": p.close} for p in self.history],
            "forecast": [{"date": p.date, "predicted": p.predicted} for p in self.forecast],
            "metrics": self.metrics.to_dict(),
        }
