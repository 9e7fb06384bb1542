"""Thin wrapper around the OpenAI chat completions API"""

import logging
from typing import Dict, List, Optional

import openai

from filing_assistant.config import OPENAI_API_KEY, OPENAI_MODEL
from filing_assistant.exceptions import LLMError

logger = logging.getLogger(__name__)


class ChatModel:
    """Sends chat messages and returns the first choice's text"""

    def __init__(self, api_key: Optional[str] = None, model: str = OPENAI_MODEL, client=None):
        self.api_key = api_key or OPENAI_API_KEY
        self.model = model
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise LLMError("Missing OpenAI API key")
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def complete(self, messages: List[Dict[str, str]], temperature: float, max_tokens: Optional[int] = None) -> str:
        kwargs = {"model": self.model, "messages": messages, "temperature": temperature}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            raise LLMError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            raise LLMError("OpenAI returned no choices")
        return response.choices[0].message.content or ""
