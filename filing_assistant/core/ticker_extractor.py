import re
from typing import List

MAX_TEXT = 60000

STOP_WORDS = {
    "SEC", "USD", "US", "GAAP", "EPS", "EBITDA", "NET", "INCOME", "LOSS", "REVENUE", "CASH", "FLOW",
    "BALANCE", "SHEET", "Q", "Q1", "Q2", "Q3", "Q4", "FY", "FYE", "K", "S", "ITEM", "NOTE", "NOTES",
    "FORM", "EXHIBIT", "SERIES", "CLASS", "STOCK", "COMMON", "SHARES",
    # file name noise
    "PDF", "DOC", "DOCX", "FINAL", "DRAFT", "REPORT", "EARNINGS", "TRANSCRIPT", "CALL", "PRESS",
    "RELEASE", "QUARTER", "ANNUAL", "V", "V1", "V2", "V3",
}

_PATTERNS = [
    re.compile(r"TRADING\s+SYMBOL\(S\)\s*:\s*([A-Z]{1,5}(?:\s*,\s*[A-Z]{1,5})*)"),
    re.compile(r"\bTICKER(?:\s*SYMBOL)?\s*[:\-]\s*([A-Z]{1,5})\b"),
    re.compile(r"\b(?:NASDAQ|NYSE|AMEX)\s*:?[\s\-]*([A-Z]{1,5})\b"),
]
_SYMBOL = re.compile(r"^[A-Z]{1,5}$")


def _add(token: str, out: List[str]):
    symbol = token.strip().upper()
    if _SYMBOL.match(symbol) and symbol not in STOP_WORDS and symbol not in out:
        out.append(symbol)


def extract_tickers(text: str, file_name: str = "") -> List[str]:
    """Suggest ticker symbols mentioned in a filing.

    File name tokens are only used when the text itself names no symbol.
    """
    sample = (text or "")[:MAX_TEXT].upper()
    found: List[str] = []
    for pattern in _PATTERNS:
        for match in pattern.finditer(sample):
            for token in re.split(r"\s*,\s*", match.group(1)):
                _add(token, found)

    if not found:
        for token in re.split(r"[^A-Z]+", (file_name or "").upper()):
            if token:
                _add(token, found)
    return found
