"""Logging configuration shared by the app and the core modules"""

import logging
import sys

from filing_assistant.config import LOG_LEVEL

_configured = False


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once; repeated calls only adjust the level."""
    global _configured
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(handler)

    # Reduce noise from verbose third-party libraries
    for name in ("urllib3", "httpx", "openai", "sentence_transformers", "faiss"):
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
