from app.services.llm.assistants_client import AssistantsClient
from app.services.llm.base import LLMError, LLMProvider, LLMResponse, LLMTimeoutError
from app.services.llm.openai_provider import OpenAIProvider

__all__ = ["AssistantsClient", "LLMError", "LLMProvider", "LLMResponse", "LLMTimeoutError", "OpenAIProvider"]
