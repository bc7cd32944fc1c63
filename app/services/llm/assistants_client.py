from typing import Any, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import LLMError, LLMTimeoutError

logger = get_logger("llm.assistants")


class AssistantsClient:
    """Thin client for the OpenAI Assistants v2 thread/run endpoints.

    Every call is a single synchronous request; non-2xx answers raise
    :class:`LLMError` except ``get_thread``, which reports a missing thread
    as ``False``.
    """

    def __init__(self, api_key: str, base_url: str = "https://api.openai.com/v1", timeout_seconds: float = 15.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        try:
            with httpx.Client(timeout=timeout if timeout is not None else self.timeout_seconds) as client:
                return client.request(method, f"{self.base_url}{path}", headers=self._headers(), json=json, params=params)
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError(f"{method} {path} timed out") from exc

    def _checked(self, response: httpx.Response, operation: str) -> dict:
        if response.status_code >= 400:
            logger.warning(
                "Assistants API call failed",
                extra={
                    "context": {
                        "operation": operation,
                        "status_code": response.status_code,
                        "body": response.text[:300],
                    }
                },
            )
            raise LLMError(f"{operation} failed: {response.status_code}", status_code=response.status_code)
        return response.json()

    def create_thread(self) -> str:
        data = self._checked(self._request("POST", "/threads", json={}), "create_thread")
        return data["id"]

    def get_thread(self, thread_id: str) -> bool:
        response = self._request("GET", f"/threads/{thread_id}")
        if response.status_code == 404:
            return False
        self._checked(response, "get_thread")
        return True

    def post_message(self, thread_id: str, text: str) -> str:
        data = self._checked(
            self._request("POST", f"/threads/{thread_id}/messages", json={"role": "user", "content": text}),
            "post_message",
        )
        return data.get("id", "")

    def start_run(
        self,
        thread_id: str,
        assistant_id: str,
        *,
        temperature: float = 0.2,
        top_p: float = 1.0,
        response_format: str = "text",
    ) -> str:
        payload = {
            "assistant_id": assistant_id,
            "temperature": temperature,
            "top_p": top_p,
            "response_format": response_format,
        }
        data = self._checked(self._request("POST", f"/threads/{thread_id}/runs", json=payload), "start_run")
        return data["id"]

    def get_run(self, thread_id: str, run_id: str, *, timeout: Optional[float] = None) -> str:
        """Current run status. ``timeout`` bounds this one request, in seconds."""
        data = self._checked(
            self._request("GET", f"/threads/{thread_id}/runs/{run_id}", timeout=timeout),
            "get_run",
        )
        return data.get("status", "")

    def list_messages(self, thread_id: str, *, limit: int = 1, order: str = "desc") -> list[dict]:
        data = self._checked(
            self._request("GET", f"/threads/{thread_id}/messages", params={"limit": limit, "order": order}),
            "list_messages",
        )
        return data.get("data") or []
