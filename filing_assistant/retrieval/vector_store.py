import logging
from typing import List, Optional

import faiss
import numpy as np

from filing_assistant.config import MAX_TOP_K
from filing_assistant.exceptions import ChunkStoreError, RetrievalError
from filing_assistant.models.document_chunk import RetrievalMatch
from filing_assistant.retrieval.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


class VectorStore:
    """Exact cosine search with a FAISS inner-product index over stored chunks.

    Stored embeddings are unit length, so inner product equals cosine
    similarity. The index mirrors the append-only chunk table: new rows are
    added incrementally and any deletion triggers a full rebuild.
    """

    def __init__(self, chunk_store: ChunkStore, max_top_k: int = MAX_TOP_K):
        self.chunk_store = chunk_store
        self.max_top_k = max_top_k
        self._reset()

    def _reset(self):
        self.index = None
        self.dimension = None
        self.chunk_ids = np.zeros(0, dtype="int64")
        self.document_ids: List[str] = []
        self.embeddings = None
        self._max_id = 0
        self._seen = 0

    def _add_rows(self, rows):
        """Append (chunk_id, document_id, embedding) rows to the index"""
        ids, docs, vectors = [], [], []
        for chunk_id, document_id, embedding in rows:
            self._seen += 1
            if self.dimension is None:
                self.dimension = embedding.shape[0]
            if embedding.shape[0] != self.dimension:
                logger.warning(
                    "Skipping chunk %s of %s: dimension %d != %d",
                    chunk_id,
                    document_id,
                    embedding.shape[0],
                    self.dimension,
                )
            else:
                ids.append(chunk_id)
                docs.append(document_id)
                vectors.append(embedding)
            self._max_id = max(self._max_id, chunk_id)

        if not vectors:
            return

        matrix = np.vstack(vectors).astype("float32")
        if self.index is None:
            self.index = faiss.IndexFlatIP(self.dimension)
        self.index.add(matrix)
        self.embeddings = matrix if self.embeddings is None else np.vstack([self.embeddings, matrix])
        self.chunk_ids = np.concatenate([self.chunk_ids, np.asarray(ids, dtype="int64")])
        self.document_ids.extend(docs)

    def refresh(self):
        """Sync the index with the chunk table"""
        count, max_id = self.chunk_store.chunk_stats()
        if max_id == self._max_id and count == self._seen:
            return

        new_rows = self.chunk_store.iter_embeddings(after_id=self._max_id)
        if count == self._seen + len(new_rows):
            self._add_rows(new_rows)
        else:
            logger.info("Chunk table changed underneath the index, rebuilding")
            self._reset()
            self._add_rows(self.chunk_store.iter_embeddings())

    def search(
        self,
        query_embedding: np.ndarray,
        top_k: int,
        document_id: Optional[str] = None,
    ) -> List[RetrievalMatch]:
        """Search for most relevant chunks, best first"""
        top_k = min(top_k, self.max_top_k)
        if top_k <= 0:
            return []

        try:
            self.refresh()
        except ChunkStoreError as e:
            raise RetrievalError(f"Could not load embeddings: {e}") from e

        if self.index is None or len(self.chunk_ids) == 0:
            return []

        query = np.asarray(query_embedding, dtype="float32").reshape(1, -1)
        if query.shape[1] != self.dimension:
            raise RetrievalError(
                f"Query dimension {query.shape[1]} does not match stored dimension {self.dimension}"
            )

        if document_id is None:
            index, positions = self.index, np.arange(len(self.chunk_ids))
        else:
            positions = np.flatnonzero(np.asarray(self.document_ids) == document_id)
            if len(positions) == 0:
                return []
            index = faiss.IndexFlatIP(self.dimension)
            index.add(self.embeddings[positions])

        actual_top_k = min(top_k, len(positions))
        scores, hits = index.search(query, actual_top_k)

        candidates = []
        for score, hit in zip(scores[0], hits[0]):
            if hit < 0:
                continue
            chunk_id = int(self.chunk_ids[positions[hit]])
            candidates.append((float(np.clip(score, -1.0, 1.0)), chunk_id))

        # Equal scores fall back to insertion order
        candidates.sort(key=lambda c: (-c[0], c[1]))

        try:
            chunks = self.chunk_store.get_chunks_by_ids([chunk_id for _, chunk_id in candidates])
        except ChunkStoreError as e:
            raise RetrievalError(f"Could not load matched chunks: {e}") from e

        results = []
        for score, chunk_id in candidates:
            chunk = chunks.get(chunk_id)
            if chunk is None:
                continue
            results.append(
                RetrievalMatch(
                    chunk_id=chunk_id,
                    document_id=chunk.document_id,
                    chunk_index=chunk.chunk_index,
                    content=chunk.content,
                    similarity=score,
                )
            )
        logger.debug("Retrieved %d chunk(s) for top_k=%d document=%s", len(results), top_k, document_id)
        return results
