from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig

PENDING_STATUSES = {"queued", "in_progress", "requires_action", "cancelling"}


class ApiClient:
    """Minimal HTTP client for the probe chat service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=60.0)

    def close(self) -> None:
        self._client.close()

    def send_message(
        self, message: str, thread_id: Optional[str] = None, resume: bool = False
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": message}
        if thread_id:
            body["threadId"] = thread_id
            if resume:
                body["resume"] = True
        try:
            response = self._client.post("/chat", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        if not isinstance(payload.get("threadId"), str):
            raise typer.BadParameter("Unexpected response payload from /chat.")
        return payload

    def wait_for_reply(
        self,
        payload: Dict[str, Any],
        follow_up: str,
        interval: float,
        timeout: float,
    ) -> Dict[str, Any]:
        """Resume the same thread until its run leaves a pending state."""
        deadline = time.monotonic() + timeout
        last_payload = payload
        while last_payload.get("runStatus") in PENDING_STATUSES:
            if time.monotonic() > deadline:
                typer.secho(
                    (
                        f"Timed out waiting on thread {last_payload.get('threadId')}. "
                        f"Last status: {last_payload.get('runStatus')}"
                    ),
                    fg=typer.colors.RED,
                    err=True,
                )
                raise typer.Exit(code=1)
            time.sleep(interval)
            last_payload = self.send_message(follow_up, last_payload["threadId"], resume=True)
        return last_payload

    def get_weather(self, query: Optional[str] = None, zip_code: Optional[str] = None) -> Dict[str, Any]:
        params = {key: value for key, value in (("q", query), ("zip", zip_code)) if value}
        try:
            response = self._client.get("/weather", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("error") or data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
