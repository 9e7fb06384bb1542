"""Configuration settings for the filing assistant"""

import json
import os

from dotenv import load_dotenv

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Storage
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///filings.db")

# Embedding backends: "huggingface" calls the hosted inference endpoint,
# "local" runs a sentence-transformers model in-process
EMBEDDING_BACKEND = os.getenv("EMBEDDING_BACKEND", "huggingface")

HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY", "")
HF_MODEL_ID = os.getenv("HF_MODEL_ID", "BAAI/bge-m3")
HF_ROUTER_URL = (
    "https://router.huggingface.co/hf-inference/models/{model}/pipeline/feature-extraction"
)
HF_LEGACY_URL = "https://api-inference.huggingface.co/pipeline/feature-extraction/{model}"

# Local embedding model options
MODEL_OPTIONS = {
    "BAAI latest": "BAAI/bge-m3",
    "BAAI Base": "BAAI/bge-base-en-v1.5",
    "BAAI Large": "BAAI/bge-large-en-v1.5",
    "E5 Small": "intfloat/e5-small-v2",
    "E5 Base": "intfloat/e5-base-v2",
    "E5 Large": "intfloat/e5-large-v2",
    "E5 Multilingual Small": "intfloat/multilingual-e5-small",
    "E5 Multilingual Base": "intfloat/multilingual-e5-base",
    "E5 Multilingual Large": "intfloat/multilingual-e5-large",
}
LOCAL_EMBEDDING_MODEL = os.getenv("LOCAL_EMBEDDING_MODEL", "E5 Base")
EMBED_NUM_THREADS = int(os.getenv("EMBED_NUM_THREADS", "1"))

# Intent prefixes for asymmetric retrieval
PASSAGE_PREFIX = "passage: "
QUERY_PREFIX = "query: "

# Text processing settings
CHUNK_SIZE = 1500
CHUNK_OVERLAP = 200
EMBED_BATCH_SIZE = 24

# Retry policy for the embedding endpoint
EMBED_MAX_RETRIES = 3
EMBED_RETRY_DELAY = 0.4
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))

# OpenAI settings
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
ANSWER_TEMPERATURE = 0.2
ANALYSIS_TEMPERATURE = 0.1

# Retrieval defaults
DEFAULT_TOP_K = 6
UI_TOP_K = 12
MIN_TOP_K = 1
MAX_TOP_K = 20

# Document walks for sentiment / anomaly analysis
DEFAULT_LIMIT_DOCS = 50
SENTIMENT_MAX_CHUNKS = 80
SENTIMENT_MAX_CHARS = 16000
ANOMALY_MAX_CHUNKS = 120
ANOMALY_MAX_CHARS = 18000

# Forecast settings
DEFAULT_TICKERS = ["WMT", "MCD", "ADBE"]
FORECAST_HORIZON_DAYS = 30
YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
YAHOO_RANGE = "2y"
YAHOO_INTERVAL = "1d"

# Ticker -> company names used to join sentiment/anomaly results with tickers.
# Override with a JSON file of the same shape via TICKER_COMPANIES_PATH.
TICKER_COMPANIES = {
    "WMT": ["Walmart"],
    "MCD": ["McDonald's"],
    "ADBE": ["Adobe"],
}


def load_ticker_companies(path=None):
    """Load the ticker -> company names mapping, defaulting to TICKER_COMPANIES"""
    path = path or os.getenv("TICKER_COMPANIES_PATH")
    if not path:
        return {k: list(v) for k, v in TICKER_COMPANIES.items()}

    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)

    mapping = {}
    for ticker, names in raw.items():
        if isinstance(names, str):
            names = [names]
        mapping[ticker.strip().upper()] = [str(n) for n in names]
    return mapping


SUMMARY_QUESTION = (
    "Provide a concise executive summary focusing on key financial metrics, "
    "risks, and outlook. Use up to 5 short bullet points."
)

SYSTEM_PROMPT = """You are a financial analysis assistant for SEC filings. Use ONLY the provided CONTEXT to answer.
Be concise and cite figures directly. If the answer is not in the context, say so."""

SENTIMENT_SYSTEM_PROMPT = """You are a precise financial NLP tool. Extract company names mentioned in the document text
and assign an overall sentiment score for each company based on the narrative (earnings, guidance, risk).
Return minified JSON only."""

SENTIMENT_USER_PROMPT = """Document Title: {title}
---
{text}
---
Return JSON with shape: {{"companies": [{{"name": string, "score": number, "confidence"?: number}}]}}
- score must be a float in [-1,1] (negative = bearish, positive = bullish).
- Only include proper company entities (e.g., "Apple Inc.", "Microsoft Corporation").
- If none, return {{"companies": []}}."""

ANOMALY_SYSTEM_PROMPT = """You are a financial forensic analyst. From the provided SEC filing excerpts, detect anomalies
in financial metrics that could signal risks (e.g., sharp revenue declines, margin compression, negative FCF,
debt spikes, inventory build, receivables growth, customer churn, guidance cuts). Return compact JSON only."""

ANOMALY_USER_PROMPT = """Document Title: {title}
---
{text}
---
Return JSON with shape: {{"anomalies": [{{"company"?: string, "metric": string, "period"?: string, "change"?: string, "severity"?: "low"|"medium"|"high", "rationale"?: string}}]}}
- Strictly numeric-backed or clearly stated anomalies only.
- Avoid duplicates.
- Severity based on potential risk exposure.
- Keep rationale very brief (<= 160 chars)."""
