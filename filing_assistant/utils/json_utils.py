import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def safe_parse_json(text: str) -> Optional[Dict[str, Any]]:
    """Parse the outermost {...} object in free-form model output.

    Returns None when no object can be parsed; callers treat that as an
    empty result.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    candidate = text[start : end + 1] if start >= 0 and end > start else text
    try:
        parsed = json.loads(candidate)
    except ValueError:
        logger.debug("Unparseable model output: %.200s", text)
        return None
    return parsed if isinstance(parsed, dict) else None
