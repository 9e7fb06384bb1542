"""Retrieval-augmented answer generation using OpenAI"""

import logging
from typing import List, Optional

from filing_assistant.config import ANSWER_TEMPERATURE, DEFAULT_TOP_K, SYSTEM_PROMPT
from filing_assistant.core.embedding_manager import EmbeddingManager
from filing_assistant.core.llm_client import ChatModel
from filing_assistant.exceptions import AnswerGenerationError, FilingAssistantError
from filing_assistant.models.document_chunk import AnswerResult, RetrievalMatch
from filing_assistant.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)


def build_context(matches: List[RetrievalMatch]) -> str:
    """Label each retrieved chunk with its index and owning document"""
    return "\n---\n".join(
        f"Chunk #{m.chunk_index} (doc {m.document_id}):\n{m.content}" for m in matches
    )


class AnswerGenerator:
    """Embeds the question, retrieves chunks and asks the chat model"""

    def __init__(self, embedding_manager: EmbeddingManager, vector_store: VectorStore, chat_model: ChatModel):
        self.embedding_manager = embedding_manager
        self.vector_store = vector_store
        self.chat_model = chat_model

    def build_messages(self, question: str, context: str, extra_context: Optional[str] = None):
        context_block = f"CONTEXT:\n{context}"
        if extra_context:
            context_block += f"\n\nEXTRA CONTEXT:\n{extra_context}"
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "system", "content": context_block},
            {"role": "user", "content": question},
        ]

    def answer(
        self,
        question: str,
        document_id: Optional[str] = None,
        top_k: int = DEFAULT_TOP_K,
        extra_context: Optional[str] = None,
    ) -> AnswerResult:
        """Answer a question from stored chunks; any failing step raises AnswerGenerationError"""
        try:
            # Step 1: embed with the query intent
            query_embedding = self.embedding_manager.encode_query(question)

            # Step 2: retrieve
            matches = self.vector_store.search(query_embedding, top_k, document_id=document_id)

            # Step 3 + 4: assemble context and ask the model
            messages = self.build_messages(question, build_context(matches), extra_context)
            answer = self.chat_model.complete(messages, temperature=ANSWER_TEMPERATURE)
        except FilingAssistantError as e:
            logger.error("Answer generation failed (document=%s): %s", document_id, e)
            raise AnswerGenerationError(str(e)) from e

        logger.info("Answered question with %d citation(s) (document=%s)", len(matches), document_id)
        return AnswerResult(answer=answer, citations=matches)
