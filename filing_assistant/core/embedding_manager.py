"""Embedding providers and batching"""

import logging
import os
import time
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
import requests
import torch
from sentence_transformers import SentenceTransformer

from filing_assistant.config import (
    EMBED_BATCH_SIZE,
    EMBED_MAX_RETRIES,
    EMBED_NUM_THREADS,
    EMBED_RETRY_DELAY,
    EMBEDDING_BACKEND,
    HF_LEGACY_URL,
    HF_MODEL_ID,
    HF_ROUTER_URL,
    HTTP_TIMEOUT_SECONDS,
    HUGGINGFACE_API_KEY,
    LOCAL_EMBEDDING_MODEL,
    MODEL_OPTIONS,
    PASSAGE_PREFIX,
    QUERY_PREFIX,
    RETRYABLE_STATUS_CODES,
)
from filing_assistant.exceptions import EmbeddingError

logger = logging.getLogger(__name__)

_runtime_configured = False
_local_models = {}


def configure_runtime(num_threads: int = EMBED_NUM_THREADS) -> None:
    """Pin tokenizer/torch thread pools once per process; later calls are no-ops"""
    global _runtime_configured
    if _runtime_configured:
        return
    os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")
    torch.set_num_threads(num_threads)
    _runtime_configured = True
    logger.debug("Embedding runtime configured with %d thread(s)", num_threads)


def l2_normalize(vectors: np.ndarray) -> np.ndarray:
    """Scale rows to unit length; zero rows are left as zeros"""
    vectors = np.asarray(vectors, dtype="float32")
    if vectors.ndim == 1:
        vectors = vectors.reshape(1, -1)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return vectors / norms


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that maps a batch of texts to one vector per text"""

    @property
    def model_name(self) -> str:
        ...

    def embed(self, texts: List[str]) -> np.ndarray:
        """Return an array of shape (len(texts), dim)"""
        ...


class HuggingFaceEndpointEmbedder:
    """Feature-extraction through the hosted Hugging Face inference API"""

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_id: str = HF_MODEL_ID,
        max_retries: int = EMBED_MAX_RETRIES,
        retry_delay: float = EMBED_RETRY_DELAY,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise EmbeddingError("Missing HUGGINGFACE_API_KEY")
        self.api_key = api_key
        self.model_id = model_id
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def model_name(self) -> str:
        return self.model_id

    def _post(self, url: str, texts: List[str]) -> requests.Response:
        return self.session.post(
            url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={"inputs": texts, "options": {"wait_for_model": True}},
            timeout=self.timeout,
        )

    def _request(self, texts: List[str]) -> object:
        """POST with linear backoff on transient failures"""
        last_error = "no response"
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self._post(HF_ROUTER_URL.format(model=self.model_id), texts)
                if resp.status_code == 404:
                    resp = self._post(HF_LEGACY_URL.format(model=self.model_id), texts)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = str(e)
                logger.warning("Embedding request attempt %d/%d failed: %s", attempt, self.max_retries, e)
            except requests.RequestException as e:
                raise EmbeddingError(f"Hugging Face request failed: {e}") from e
            else:
                if resp.ok:
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise EmbeddingError(
                            f"Hugging Face returned a non-JSON body: {resp.text[:200]}"
                        ) from e
                last_error = f"HTTP {resp.status_code}: {resp.text[:200]}"
                if resp.status_code not in RETRYABLE_STATUS_CODES:
                    break
                logger.warning(
                    "Embedding request attempt %d/%d returned %d",
                    attempt,
                    self.max_retries,
                    resp.status_code,
                )

            if attempt < self.max_retries:
                time.sleep(self.retry_delay * attempt)

        raise EmbeddingError(f"Hugging Face request failed: {last_error}")

    def embed(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, 0), dtype="float32")
        raw = self._request(list(texts))
        embeddings = parse_embeddings(raw, expected=len(texts))
        return l2_normalize(embeddings)


def _depth(value) -> int:
    depth = 0
    while isinstance(value, list) and value:
        depth += 1
        value = value[0]
    return depth if isinstance(value, (int, float)) else -1


def parse_embeddings(raw, expected: int) -> np.ndarray:
    """Normalize the various feature-extraction payload shapes to (n, dim)"""
    if isinstance(raw, dict):
        if isinstance(raw.get("embeddings"), list):
            raw = raw["embeddings"]
        elif isinstance(raw.get("data"), list) and raw["data"] and "embedding" in raw["data"][0]:
            raw = [row["embedding"] for row in raw["data"]]
        else:
            raise EmbeddingError(f"Unexpected embeddings format: keys {sorted(raw)}")

    depth = _depth(raw)
    try:
        if depth == 1:
            vectors = np.asarray([raw], dtype="float32")
        elif depth == 2 and expected == 1:
            # tokens x dims for a single input (or an already pooled 1 x dims)
            vectors = np.asarray(raw, dtype="float32").mean(axis=0, keepdims=True)
        elif depth == 2:
            vectors = np.asarray(raw, dtype="float32")
        elif depth == 3:
            vectors = np.stack([np.asarray(tokens, dtype="float32").mean(axis=0) for tokens in raw])
        else:
            raise EmbeddingError("Unexpected embeddings format")
    except ValueError as e:
        raise EmbeddingError(f"Ragged embeddings payload: {e}") from e

    if vectors.shape[0] != expected:
        raise EmbeddingError(f"Expected {expected} embeddings, got {vectors.shape[0]}")
    return vectors


class SentenceTransformerEmbedder:
    """Local embedding provider using sentence-transformers"""

    def __init__(self, model_name: str = LOCAL_EMBEDDING_MODEL, device: Optional[str] = None):
        self._model_name = MODEL_OPTIONS.get(model_name, model_name)
        self.device = device or self._get_device()

    def _get_device(self) -> str:
        """Determine the best available device"""
        return "cuda" if torch.cuda.is_available() else "cpu"

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def model(self) -> SentenceTransformer:
        """Load the model once per process and device"""
        key = (self._model_name, self.device)
        if key not in _local_models:
            configure_runtime()
            logger.info("Loading embedding model %s on %s", self._model_name, self.device)
            _local_models[key] = SentenceTransformer(self._model_name, device=self.device)
        return _local_models[key]

    @property
    def dimension(self) -> int:
        return self.model.get_sentence_embedding_dimension()

    def embed(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, 0), dtype="float32")
        try:
            return self.model.encode(
                list(texts),
                batch_size=len(texts),
                show_progress_bar=False,
                normalize_embeddings=True,
                convert_to_numpy=True,
            ).astype("float32")
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e


def create_provider(backend: str = EMBEDDING_BACKEND) -> EmbeddingProvider:
    """Build the configured embedding provider"""
    if backend == "local":
        return SentenceTransformerEmbedder()
    if backend == "huggingface":
        return HuggingFaceEndpointEmbedder()
    raise ValueError(f"Unknown embedding backend: {backend}")


class EmbeddingManager:
    """Applies intent prefixes and batching on top of a provider"""

    def __init__(self, provider: Optional[EmbeddingProvider] = None, batch_size: int = EMBED_BATCH_SIZE):
        self.provider = provider or create_provider()
        self.batch_size = batch_size

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    def format_text_for_model(self, text: str, is_query: bool = False) -> str:
        """Prefix text with its retrieval intent"""
        prefix = QUERY_PREFIX if is_query else PASSAGE_PREFIX
        return f"{prefix}{text.strip()}"

    def batches(self, items: Sequence) -> Iterator[Tuple[int, list]]:
        """Yield (start_index, batch) pairs"""
        for start in range(0, len(items), self.batch_size):
            yield start, list(items[start : start + self.batch_size])

    def embed_passages(self, texts: Sequence[str]) -> np.ndarray:
        """Embed one batch of document passages"""
        formatted = [self.format_text_for_model(t) for t in texts]
        embeddings = self.provider.embed(formatted)
        if len(embeddings) != len(formatted):
            raise EmbeddingError(f"Expected {len(formatted)} embeddings, got {len(embeddings)}")
        return l2_normalize(embeddings)

    def encode_query(self, query: str) -> np.ndarray:
        """Encode a single query to a 1-D unit vector"""
        embeddings = self.provider.embed([self.format_text_for_model(query, is_query=True)])
        if len(embeddings) != 1:
            raise EmbeddingError(f"Expected 1 query embedding, got {len(embeddings)}")
        return l2_normalize(embeddings)[0]
