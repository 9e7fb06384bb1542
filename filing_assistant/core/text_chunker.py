"""Text chunking functionality"""

import re
from typing import List

from filing_assistant.config import CHUNK_OVERLAP, CHUNK_SIZE
from filing_assistant.models.document_chunk import DocumentChunk

PARAGRAPH_SEPARATOR = "\n\n"
_PARAGRAPH_BREAK = re.compile(r"\n{2,}")


class TextChunker:
    """Handles paragraph-aware text chunking with overlap"""

    def __init__(self, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
            )
        self.chunk_size = chunk_size
        self.overlap = overlap

    def split_paragraphs(self, text: str) -> List[str]:
        """Pack paragraphs greedily, hard-splitting any paragraph over chunk_size"""
        chunks: List[str] = []
        if not text:
            return chunks

        paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(text)]
        current = ""
        for paragraph in paragraphs:
            if not paragraph:
                continue

            candidate = current + PARAGRAPH_SEPARATOR + paragraph if current else paragraph
            if len(candidate) <= self.chunk_size:
                current = candidate
                continue

            if current:
                chunks.append(current)

            if len(paragraph) <= self.chunk_size:
                current = paragraph
            else:
                # Consecutive windows share `overlap` characters
                step = self.chunk_size - self.overlap
                for start in range(0, len(paragraph), step):
                    chunks.append(paragraph[start : start + self.chunk_size])
                current = ""

        if current:
            chunks.append(current)
        return chunks

    def add_overlap(self, chunks: List[str]) -> List[str]:
        """Prefix each chunk with the tail of its predecessor, capped at chunk_size"""
        if self.overlap <= 0 or len(chunks) <= 1:
            return list(chunks)

        with_overlap = [chunks[0]]
        for prev, chunk in zip(chunks, chunks[1:]):
            tail = prev[-self.overlap :]
            with_overlap.append((tail + PARAGRAPH_SEPARATOR + chunk)[: self.chunk_size])
        return with_overlap

    def chunk(self, text: str) -> List[str]:
        """Split text into bounded, overlapping chunks"""
        return self.add_overlap(self.split_paragraphs(text))

    def create_chunks(self, document_id: str, text: str) -> List[DocumentChunk]:
        """Create indexed document chunks for one document"""
        return [
            DocumentChunk(document_id=document_id, chunk_index=idx, content=content)
            for idx, content in enumerate(self.chunk(text))
        ]


def chunk_text(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """Functional shortcut for TextChunker(chunk_size, overlap).chunk(text)"""
    return TextChunker(chunk_size, overlap).chunk(text)
