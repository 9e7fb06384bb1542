"""
Test suite for VectorStore similarity search.

Chunks are stored with hand-picked unit vectors so expected rankings are
easy to read.
"""

import numpy as np
import pytest

from filing_assistant.exceptions import RetrievalError
from filing_assistant.retrieval.vector_store import VectorStore


def _unit(*values: float) -> list:
    vector = np.asarray(values, dtype="float32")
    return (vector / np.linalg.norm(vector)).tolist()


@pytest.fixture
def vector_store(chunk_store) -> VectorStore:
    return VectorStore(chunk_store)


class TestSearch:
    """Test suite for VectorStore.search."""

    def test_search_should_return_empty_when_store_is_empty(self, vector_store: VectorStore) -> None:
        assert vector_store.search(np.array(_unit(1, 0)), top_k=5) == []

    def test_search_should_rank_by_cosine_similarity(self, vector_store, store_document) -> None:
        """Test results are best first with non-increasing similarity."""
        store_document(
            "a.pdf",
            ["east", "north-east", "north", "west"],
            [_unit(1, 0), _unit(1, 1), _unit(0, 1), _unit(-1, 0)],
        )

        matches = vector_store.search(np.array(_unit(1, 0)), top_k=3)

        assert [m.content for m in matches] == ["east", "north-east", "north"]
        similarities = [m.similarity for m in matches]
        assert similarities == sorted(similarities, reverse=True)
        assert similarities[0] == pytest.approx(1.0, abs=1e-6)
        assert similarities[1] == pytest.approx(0.7071, abs=1e-4)

    def test_search_should_return_at_most_available_chunks(self, vector_store, store_document) -> None:
        """Test top_k larger than the corpus returns every chunk once."""
        store_document("a.pdf", ["one", "two"], [_unit(1, 0), _unit(0, 1)])

        matches = vector_store.search(np.array(_unit(1, 1)), top_k=10)

        assert sorted(m.content for m in matches) == ["one", "two"]

    def test_search_should_cap_top_k(self, chunk_store, store_document) -> None:
        """Test top_k above the cap is clamped."""
        store_document("a.pdf", [f"c{i}" for i in range(6)], [_unit(1, i) for i in range(6)])
        vector_store = VectorStore(chunk_store, max_top_k=4)

        assert len(vector_store.search(np.array(_unit(1, 0)), top_k=50)) == 4

    def test_search_should_return_nothing_for_non_positive_top_k(self, vector_store, store_document) -> None:
        store_document("a.pdf", ["one"], [_unit(1, 0)])

        assert vector_store.search(np.array(_unit(1, 0)), top_k=0) == []

    def test_search_should_filter_by_document(self, vector_store, store_document) -> None:
        """Test a document filter only returns that document's chunks."""
        first = store_document("a.pdf", ["a-east", "a-north"], [_unit(1, 0), _unit(0, 1)])
        second = store_document("b.pdf", ["b-east"], [_unit(1, 0)])

        matches = vector_store.search(np.array(_unit(1, 0)), top_k=5, document_id=first)

        assert [m.content for m in matches] == ["a-east", "a-north"]
        assert {m.document_id for m in matches} == {first}
        assert vector_store.search(np.array(_unit(1, 0)), top_k=5, document_id="unknown") == []
        assert [m.document_id for m in vector_store.search(np.array(_unit(1, 0)), 1, second)] == [second]

    def test_search_should_break_ties_by_insertion_order(self, vector_store, store_document) -> None:
        """Test equal similarities come back oldest chunk first."""
        store_document("a.pdf", ["first"], [_unit(1, 0)])
        store_document("b.pdf", ["second"], [_unit(1, 0)])
        store_document("c.pdf", ["third"], [_unit(1, 0)])

        matches = vector_store.search(np.array(_unit(1, 0)), top_k=3)

        assert [m.content for m in matches] == ["first", "second", "third"]
        assert [m.chunk_id for m in matches] == sorted(m.chunk_id for m in matches)

    def test_search_should_reject_dimension_mismatch(self, vector_store, store_document) -> None:
        store_document("a.pdf", ["one"], [_unit(1, 0)])

        with pytest.raises(RetrievalError):
            vector_store.search(np.array(_unit(1, 0, 0)), top_k=1)

    def test_match_should_carry_chunk_fields(self, vector_store, store_document) -> None:
        document_id = store_document("a.pdf", ["zero", "one"], [_unit(0, 1), _unit(1, 0)])

        (match,) = vector_store.search(np.array(_unit(1, 0)), top_k=1)

        assert match.to_dict() == {
            "id": match.chunk_id,
            "document_id": document_id,
            "chunk_index": 1,
            "similarity": match.similarity,
            "content": "one",
        }


class TestRefresh:
    """Test suite for keeping the index in step with the chunk table."""

    def test_search_should_see_chunks_added_after_first_search(self, vector_store, store_document) -> None:
        """Test new rows are picked up incrementally."""
        store_document("a.pdf", ["old"], [_unit(0, 1)])
        assert [m.content for m in vector_store.search(np.array(_unit(1, 0)), 5)] == ["old"]

        store_document("b.pdf", ["new"], [_unit(1, 0)])

        assert [m.content for m in vector_store.search(np.array(_unit(1, 0)), 5)] == ["new", "old"]
        assert len(vector_store.chunk_ids) == 2

    def test_search_should_forget_deleted_documents(self, chunk_store, vector_store, store_document) -> None:
        """Test deleting a document rebuilds the index without its chunks."""
        keep = store_document("keep.pdf", ["keep"], [_unit(0, 1)])
        drop = store_document("drop.pdf", ["drop"], [_unit(1, 0)])
        vector_store.search(np.array(_unit(1, 0)), 5)

        chunk_store.delete_document(drop)
        matches = vector_store.search(np.array(_unit(1, 0)), 5)

        assert [m.document_id for m in matches] == [keep]

    def test_refresh_should_rebuild_after_delete_and_insert(self, chunk_store, vector_store, store_document) -> None:
        """Test a delete followed by an insert still leaves only live chunks."""
        drop = store_document("drop.pdf", ["drop"], [_unit(1, 0)])
        vector_store.search(np.array(_unit(1, 0)), 5)

        chunk_store.delete_document(drop)
        store_document("new.pdf", ["new"], [_unit(1, 1)])
        matches = vector_store.search(np.array(_unit(1, 0)), 5)

        assert [m.content for m in matches] == ["new"]
