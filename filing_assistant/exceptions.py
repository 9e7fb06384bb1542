"""Exception hierarchy for the filing assistant"""


class FilingAssistantError(Exception):
    """Base class for all errors raised by the filing assistant"""


class ValidationError(FilingAssistantError):
    """Rejected input: missing field, unsupported file type, bad parameter"""


class PDFExtractionError(FilingAssistantError):
    """The uploaded file could not be read as a PDF"""


class EmbeddingError(FilingAssistantError):
    """The embedding provider failed or returned an unusable payload"""


class ChunkStoreError(FilingAssistantError):
    """A read or write against the document/chunk store failed"""


class RetrievalError(FilingAssistantError):
    """The similarity search could not be executed"""


class LLMError(FilingAssistantError):
    """The chat model request failed"""


class AnswerGenerationError(FilingAssistantError):
    """Any step of the retrieval-augmented answer pipeline failed"""


class MarketDataError(FilingAssistantError):
    """Price series missing or the market data request failed"""
