"""
Test suite for ChunkStore.

Runs against an in-memory SQLite database.
"""

import numpy as np
import pytest

from filing_assistant.models.document_chunk import DocumentChunk
from filing_assistant.retrieval.chunk_store import ChunkStore, from_bytes, to_bytes


def _chunk(document_id: str, index: int, content: str = "text", embedding=(1.0, 0.0)) -> DocumentChunk:
    return DocumentChunk(
        document_id=document_id,
        chunk_index=index,
        content=content,
        embedding=None if embedding is None else np.asarray(embedding, dtype="float32"),
    )


class TestDocuments:
    """Test suite for document rows."""

    def test_create_document_should_assign_id_and_keep_metadata(self, chunk_store: ChunkStore) -> None:
        """Test a created document can be fetched back with its metadata."""
        document = chunk_store.create_document("10-K.pdf", metadata={"size": 1024, "pages": 3})

        fetched = chunk_store.get_document(document.id)

        assert len(document.id) == 32
        assert fetched.title == "10-K.pdf"
        assert fetched.source == "upload"
        assert fetched.metadata == {"size": 1024, "pages": 3}
        assert fetched.created_at is not None

    def test_get_document_should_return_none_for_unknown_id(self, chunk_store: ChunkStore) -> None:
        assert chunk_store.get_document("missing") is None

    def test_list_documents_should_respect_limit(self, chunk_store: ChunkStore) -> None:
        """Test listing returns every document, or at most limit."""
        ids = {chunk_store.create_document(f"doc-{i}.pdf").id for i in range(3)}

        assert {d.id for d in chunk_store.list_documents()} == ids
        assert len(chunk_store.list_documents(limit=2)) == 2

    def test_duplicate_titles_should_be_separate_documents(self, chunk_store: ChunkStore) -> None:
        """Test uploading the same file twice stores two documents."""
        first = chunk_store.create_document("same.pdf")
        second = chunk_store.create_document("same.pdf")

        assert first.id != second.id
        assert len(chunk_store.list_documents()) == 2


class TestInsertChunks:
    """Test suite for ChunkStore.insert_chunks."""

    def test_insert_should_assign_ids_in_insertion_order(self, chunk_store: ChunkStore) -> None:
        """Test inserted chunks receive increasing ids."""
        document = chunk_store.create_document("a.pdf")
        chunks = [_chunk(document.id, i) for i in range(3)]

        ids = chunk_store.insert_chunks(document.id, chunks)

        assert ids == sorted(ids)
        assert [c.id for c in chunks] == ids
        assert chunk_store.count_chunks(document.id) == 3

    def test_insert_should_continue_across_batches(self, chunk_store: ChunkStore) -> None:
        """Test a second batch continues the index sequence."""
        document = chunk_store.create_document("a.pdf")
        chunk_store.insert_chunks(document.id, [_chunk(document.id, 0), _chunk(document.id, 1)])

        chunk_store.insert_chunks(document.id, [_chunk(document.id, 2)])

        assert [c.chunk_index for c in chunk_store.get_chunks(document.id)] == [0, 1, 2]

    def test_insert_should_reject_gaps_in_indices(self, chunk_store: ChunkStore) -> None:
        """Test indices that skip ahead raise ValueError and store nothing."""
        document = chunk_store.create_document("a.pdf")

        with pytest.raises(ValueError):
            chunk_store.insert_chunks(document.id, [_chunk(document.id, 0), _chunk(document.id, 2)])

        assert chunk_store.count_chunks(document.id) == 0

    def test_insert_should_require_embeddings(self, chunk_store: ChunkStore) -> None:
        """Test a chunk without an embedding is never stored."""
        document = chunk_store.create_document("a.pdf")

        with pytest.raises(ValueError):
            chunk_store.insert_chunks(document.id, [_chunk(document.id, 0, embedding=None)])

    def test_insert_should_ignore_empty_batch(self, chunk_store: ChunkStore) -> None:
        document = chunk_store.create_document("a.pdf")

        assert chunk_store.insert_chunks(document.id, []) == []


class TestReads:
    """Test suite for chunk reads."""

    def test_get_chunks_should_round_trip_embeddings(self, chunk_store: ChunkStore) -> None:
        """Test stored embeddings come back as float32 vectors."""
        document = chunk_store.create_document("a.pdf")
        chunk_store.insert_chunks(document.id, [_chunk(document.id, 0, "revenue", (0.6, 0.8))])

        (chunk,) = chunk_store.get_chunks(document.id)

        assert chunk.content == "revenue"
        assert chunk.embedding.dtype == np.float32
        np.testing.assert_allclose(chunk.embedding, [0.6, 0.8])

    def test_get_document_text_should_limit_chunks_and_chars(self, chunk_store: ChunkStore) -> None:
        """Test leading chunks are joined by blank lines and cut to max_chars."""
        document = chunk_store.create_document("a.pdf")
        chunk_store.insert_chunks(document.id, [_chunk(document.id, i, f"part{i}") for i in range(4)])

        assert chunk_store.get_document_text(document.id, max_chunks=2, max_chars=100) == "part0\n\npart1"
        assert chunk_store.get_document_text(document.id, max_chunks=4, max_chars=8) == "part0\n\np"

    def test_iter_embeddings_should_start_after_id(self, chunk_store: ChunkStore) -> None:
        """Test only rows newer than after_id are returned, oldest first."""
        document = chunk_store.create_document("a.pdf")
        ids = chunk_store.insert_chunks(document.id, [_chunk(document.id, i) for i in range(3)])

        rows = chunk_store.iter_embeddings(after_id=ids[0])

        assert [row[0] for row in rows] == ids[1:]
        assert all(row[1] == document.id for row in rows)

    def test_chunk_stats_should_report_count_and_max_id(self, chunk_store: ChunkStore) -> None:
        assert chunk_store.chunk_stats() == (0, 0)
        document = chunk_store.create_document("a.pdf")
        ids = chunk_store.insert_chunks(document.id, [_chunk(document.id, i) for i in range(2)])

        assert chunk_store.chunk_stats() == (2, ids[-1])

    def test_get_chunks_by_ids_should_map_ids(self, chunk_store: ChunkStore) -> None:
        document = chunk_store.create_document("a.pdf")
        ids = chunk_store.insert_chunks(document.id, [_chunk(document.id, i, f"c{i}") for i in range(2)])

        chunks = chunk_store.get_chunks_by_ids(ids)

        assert {i: c.content for i, c in chunks.items()} == {ids[0]: "c0", ids[1]: "c1"}


class TestDelete:
    """Test suite for ChunkStore.delete_document."""

    def test_delete_should_remove_document_and_chunks(self, chunk_store: ChunkStore) -> None:
        """Test deletion cascades to chunks and reports whether anything was removed."""
        keep = chunk_store.create_document("keep.pdf")
        drop = chunk_store.create_document("drop.pdf")
        chunk_store.insert_chunks(keep.id, [_chunk(keep.id, 0)])
        chunk_store.insert_chunks(drop.id, [_chunk(drop.id, 0), _chunk(drop.id, 1)])

        assert chunk_store.delete_document(drop.id) is True
        assert chunk_store.delete_document(drop.id) is False
        assert chunk_store.get_document(drop.id) is None
        assert chunk_store.count_chunks() == 1


def test_embedding_bytes_should_be_float32() -> None:
    """Test embeddings serialise as packed float32."""
    blob = to_bytes(np.array([1.0, 2.0], dtype="float64"))

    assert len(blob) == 8
    assert from_bytes(blob).tolist() == [1.0, 2.0]
