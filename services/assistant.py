"""Thin async client for the thread/run assistant API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

NO_REPLY = "(no reply)"


class AssistantAPIError(Exception):
    """A thread or run lifecycle call failed upstream."""

    def __init__(self, operation: str, status_code: Optional[int], body: str) -> None:
        super().__init__(f"{operation} failed with status {status_code}: {body}")
        self.operation = operation
        self.status_code = status_code
        self.body = body


class AssistantClient:
    """JSON-over-HTTPS wrapper around threads, messages and runs."""

    def __init__(self, http_client: httpx.AsyncClient, assistant_id: str) -> None:
        self._client = http_client
        self.assistant_id = assistant_id

    @staticmethod
    def default_headers(api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }

    async def create_thread(self) -> str:
        payload = await self._request("create thread", "POST", "/threads", json={})
        thread_id = payload.get("id")
        if not isinstance(thread_id, str) or not thread_id:
            raise AssistantAPIError("create thread", None, "response carried no thread id")
        return thread_id

    async def add_message(self, thread_id: str, content: str) -> Dict[str, Any]:
        return await self._request(
            "add message",
            "POST",
            f"/threads/{thread_id}/messages",
            json={"role": "user", "content": content},
        )

    async def create_run(self, thread_id: str) -> Dict[str, Any]:
        return await self._request(
            "create run",
            "POST",
            f"/threads/{thread_id}/runs",
            json={"assistant_id": self.assistant_id},
        )

    async def get_run(self, thread_id: str, run_id: str) -> Dict[str, Any]:
        return await self._request("get run", "GET", f"/threads/{thread_id}/runs/{run_id}")

    async def latest_run(self, thread_id: str) -> Optional[Dict[str, Any]]:
        payload = await self._request(
            "list runs",
            "GET",
            f"/threads/{thread_id}/runs",
            params={"order": "desc", "limit": 1},
        )
        runs = payload.get("data") or []
        return runs[0] if runs else None

    async def submit_tool_outputs(
        self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]
    ) -> Dict[str, Any]:
        return await self._request(
            "submit tool outputs",
            "POST",
            f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            json={"tool_outputs": outputs},
        )

    async def latest_assistant_text(self, thread_id: str) -> str:
        payload = await self._request(
            "list messages",
            "GET",
            f"/threads/{thread_id}/messages",
            params={"order": "desc", "limit": 1},
        )
        messages = payload.get("data") or []
        if not messages or messages[0].get("role") not in (None, "assistant"):
            return NO_REPLY
        parts = [
            part.get("text", {}).get("value", "")
            for part in messages[0].get("content") or []
            if part.get("type", "text") == "text"
        ]
        text = "\n".join(part for part in parts if part).strip()
        return text or NO_REPLY

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, json=json, params=params)
        except httpx.HTTPError as exc:
            raise AssistantAPIError(operation, None, str(exc)) from exc

        if not response.is_success:
            logger.error(
                "Assistant API call failed",
                extra={"reason": operation, "status_code": response.status_code},
            )
            raise AssistantAPIError(operation, response.status_code, response.text[:500])

        try:
            data = response.json()
        except ValueError as exc:
            raise AssistantAPIError(operation, response.status_code, "invalid JSON body") from exc
        return data if isinstance(data, dict) else {}
