"""Linear-trend stock forecasting over daily closing prices"""

import logging
import math
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

import numpy as np
import requests

from filing_assistant.config import (
    DEFAULT_TICKERS,
    FORECAST_HORIZON_DAYS,
    HTTP_TIMEOUT_SECONDS,
    YAHOO_CHART_URL,
    YAHOO_INTERVAL,
    YAHOO_RANGE,
)
from filing_assistant.exceptions import MarketDataError, ValidationError
from filing_assistant.models.market import ForecastMetrics, ForecastPoint, SeriesPoint, TickerForecast

logger = logging.getLogger(__name__)


class PriceSeriesSource(Protocol):
    def fetch_series(self, symbol: str) -> List[SeriesPoint]:
        ...


def _first_dict(items) -> dict:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _as_close(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def _as_day(ts) -> Optional[str]:
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).date().isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def parse_daily_series(payload) -> List[SeriesPoint]:
    """Extract (date, close) points from a Yahoo chart payload, adjusted close preferred

    Malformed entries (non-numeric closes, bad timestamps, unexpected nesting) are skipped.
    """
    chart = payload.get("chart") if isinstance(payload, dict) else None
    result = _first_dict(chart.get("result") if isinstance(chart, dict) else None)
    if not result:
        return []
    timestamps = _as_list(result.get("timestamp"))
    indicators = result.get("indicators")
    if not isinstance(indicators, dict):
        indicators = {}
    adjclose = _as_list(_first_dict(indicators.get("adjclose")).get("adjclose"))
    close = _as_list(_first_dict(indicators.get("quote")).get("close"))

    points = []
    for i, ts in enumerate(timestamps):
        value = _as_close(adjclose[i]) if i < len(adjclose) else None
        if value is None and i < len(close):
            value = _as_close(close[i])
        day = _as_day(ts)
        if value is None or day is None:
            continue
        points.append(SeriesPoint(date=day, close=value))

    points.sort(key=lambda p: p.date)
    return points


class YahooFinanceClient:
    """Daily price history from the Yahoo Finance chart API"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_series(self, symbol: str) -> List[SeriesPoint]:
        url = YAHOO_CHART_URL.format(symbol=requests.utils.quote(symbol, safe=""))
        try:
            resp = self.session.get(
                url,
                params={"range": YAHOO_RANGE, "interval": YAHOO_INTERVAL, "includeAdjustedClose": "true"},
                headers={"User-Agent": "Mozilla/5.0"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise MarketDataError(f"Yahoo Finance request for {symbol} failed: {e}") from e

        if not resp.ok:
            raise MarketDataError(f"Yahoo Finance error {resp.status_code} for {symbol}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise MarketDataError(f"Invalid Yahoo Finance payload for {symbol}") from e

        chart = payload.get("chart") if isinstance(payload, dict) else None
        if not isinstance(chart, dict):
            raise MarketDataError(f"Invalid Yahoo Finance payload for {symbol}")

        error = chart.get("error")
        if error:
            description = error.get("description") if isinstance(error, dict) else str(error)
            raise MarketDataError(description or f"Yahoo Finance error for {symbol}")

        series = parse_daily_series(payload)
        if not series:
            raise MarketDataError(f"No time series data for {symbol}")
        return series


def linear_regression(y: Sequence[float]) -> Tuple[float, float]:
    """Closed-form OLS of y against 0..n-1; returns (slope, intercept)"""
    values = np.asarray(y, dtype="float64")
    n = len(values)
    if n == 0:
        return 0.0, 0.0
    x = np.arange(n, dtype="float64")
    sum_x, sum_y = x.sum(), values.sum()
    sum_xy, sum_xx = (x * values).sum(), (x * x).sum()
    denom = n * sum_xx - sum_x * sum_x
    m = (n * sum_xy - sum_x * sum_y) / denom if denom != 0 else 0.0
    b = (sum_y - m * sum_x) / n
    return float(m), float(b)


def daily_returns(closes: Sequence[float]) -> np.ndarray:
    """Finite day-over-day fractional returns"""
    values = np.asarray(closes, dtype="float64")
    if len(values) < 2:
        return np.zeros(0)
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(values) / values[:-1]
    return returns[np.isfinite(returns)]


def sample_std(values: Sequence[float]) -> float:
    values = np.asarray(values, dtype="float64")
    if len(values) < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def next_business_days(start: date, count: int) -> List[str]:
    """The `count` weekdays strictly after `start`, as ISO dates"""
    if count <= 0:
        return []
    days = np.busday_offset(np.datetime64(start, "D"), np.arange(1, count + 1), roll="backward")
    return [str(d) for d in np.datetime_as_string(days, unit="D")]


def trend_of(slope: float) -> str:
    if slope > 0:
        return "up"
    if slope < 0:
        return "down"
    return "flat"


def normalize_tickers(tickers: Optional[Iterable[str]]) -> List[str]:
    """Trim, upper-case and de-duplicate tickers preserving order"""
    if tickers is None:
        tickers = DEFAULT_TICKERS
    seen = []
    for ticker in tickers:
        symbol = str(ticker).strip().upper()
        if symbol and symbol not in seen:
            seen.append(symbol)
    return seen


def build_forecast(symbol: str, series: List[SeriesPoint], horizon_days: int) -> TickerForecast:
    """Fit a linear trend to `series` and project `horizon_days` business days"""
    if not series:
        raise MarketDataError(f"Empty series for {symbol}")

    closes = [p.close for p in series]
    last_close = closes[-1]
    if not math.isfinite(last_close):
        raise MarketDataError(f"Invalid last close for {symbol}")

    volatility = sample_std(daily_returns(closes))
    m, b = linear_regression(closes)
    last_index = len(closes) - 1

    future_dates = next_business_days(date.fromisoformat(series[-1].date), horizon_days)
    forecast = [
        ForecastPoint(date=day, predicted=round(m * (last_index + i + 1) + b, 2))
        for i, day in enumerate(future_dates)
    ]

    expected_change = 0.0
    if forecast and last_close:
        expected_change = (forecast[-1].predicted - last_close) / last_close

    return TickerForecast(
        symbol=symbol,
        history=list(series),
        forecast=forecast,
        metrics=ForecastMetrics(
            last_close=round(last_close, 2),
            trend=trend_of(m),
            expected_change_pct=round(expected_change * 100, 2),
            volatility=round(volatility * 100, 2),
        ),
    )


class ForecastEngine:
    """Per-ticker linear forecasts; a failed ticker never aborts the batch"""

    def __init__(self, source: Optional[PriceSeriesSource] = None):
        self.source = source or YahooFinanceClient()

    def forecast(self, symbol: str, horizon_days: int = FORECAST_HORIZON_DAYS) -> TickerForecast:
        try:
            series = self.source.fetch_series(symbol)
            return build_forecast(symbol, series, horizon_days)
        except (MarketDataError, TypeError, ValueError) as e:
            logger.error("Failed ticker %s: %s", symbol, e)
            return TickerForecast(symbol=symbol, error=str(e))

    def forecast_many(
        self, tickers: Optional[Iterable[str]] = None, horizon_days: int = FORECAST_HORIZON_DAYS
    ) -> List[TickerForecast]:
        if not isinstance(horizon_days, int) or horizon_days <= 0:
            raise ValidationError(f"horizon_days must be a positive integer, got {horizon_days!r}")
        symbols = normalize_tickers(tickers)
        results = [self.forecast(symbol, horizon_days) for symbol in symbols]
        failed = [r.symbol for r in results if r.failed]
        logger.info("Forecast %d ticker(s), %d failed %s", len(results), len(failed), failed or "")
        return results
