"""Drives an assistant run to completion, servicing tool calls on the way."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from app.schemas import RunStatus
from services.assistant import AssistantClient
from services.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

STILL_WORKING_REPLY = (
    "I'm still working on that. Please ask again in a moment and I'll pick up "
    "where I left off."
)

ACTIVE_STATUSES = frozenset(
    status.value for status in (RunStatus.queued, RunStatus.in_progress, RunStatus.cancelling)
)
RESUMABLE_STATUSES = ACTIVE_STATUSES | {RunStatus.requires_action.value}


class RunFailedError(Exception):
    """The run reached a terminal state other than ``completed``."""

    def __init__(self, thread_id: str, run_id: str, status: str, details: Any = None) -> None:
        super().__init__(f"Run {run_id} ended with status {status!r}")
        self.thread_id = thread_id
        self.run_id = run_id
        self.status = status
        self.details = details


@dataclass
class ChatOutcome:
    thread_id: str
    response: str
    run_status: str
    run_id: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.run_status == RunStatus.completed


@dataclass
class _Progress:
    thread_id: str
    run_id: Optional[str] = None
    status: str = RunStatus.queued.value


class RunOrchestrator:
    """Create or resume a run and poll it within a wall-clock budget."""

    def __init__(
        self,
        assistant: AssistantClient,
        dispatcher: ToolDispatcher,
        poll_interval: float = 0.7,
        budget_seconds: float = 8.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.assistant = assistant
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self.budget_seconds = budget_seconds
        self._sleep = sleep

    async def chat(
        self, message: str, thread_id: Optional[str] = None, resume: bool = False
    ) -> ChatOutcome:
        """Run one chat turn.

        With ``resume`` the latest run on ``thread_id`` is followed to its end
        whatever its state, and ``message`` is only posted when the thread has
        no run yet.
        """
        started = time.perf_counter()
        if not thread_id:
            thread_id = await self.assistant.create_thread()
            logger.info("Created thread", extra={"thread_id": thread_id})

        progress = _Progress(thread_id=thread_id)
        try:
            async with asyncio.timeout(self.budget_seconds):
                run = await self._start_or_resume(progress, message, resume)
                run = await self._drive(progress, run, message)
        except TimeoutError:
            logger.info(
                "Run budget exhausted",
                extra={
                    "thread_id": thread_id,
                    "run_id": progress.run_id,
                    "run_status": progress.status,
                    "elapsed_ms": int((time.perf_counter() - started) * 1000),
                },
            )
            return ChatOutcome(
                thread_id=thread_id,
                response=STILL_WORKING_REPLY,
                run_status=progress.status,
                run_id=progress.run_id,
            )

        # The run is finished upstream; its reply is read outside the budget.
        reply = await self.assistant.latest_assistant_text(thread_id)
        logger.info(
            "Run completed",
            extra={
                "thread_id": thread_id,
                "run_id": run.get("id"),
                "elapsed_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return ChatOutcome(
            thread_id=thread_id,
            response=reply,
            run_status=str(run.get("status")),
            run_id=run.get("id"),
        )

    async def _start_or_resume(
        self, progress: _Progress, message: str, resume: bool = False
    ) -> Dict[str, Any]:
        active = await self.assistant.latest_run(progress.thread_id)
        if active and (resume or active.get("status") in RESUMABLE_STATUSES):
            logger.info(
                "Resuming run",
                extra={
                    "thread_id": progress.thread_id,
                    "run_id": active.get("id"),
                    "run_status": active.get("status"),
                },
            )
            self._track(progress, active)
            return active

        await self.assistant.add_message(progress.thread_id, message)
        run = await self.assistant.create_run(progress.thread_id)
        self._track(progress, run)
        return run

    async def _drive(
        self, progress: _Progress, run: Dict[str, Any], message: str
    ) -> Dict[str, Any]:
        thread_id = progress.thread_id
        while True:
            status = run.get("status")
            run_id = str(run.get("id"))

            if status == RunStatus.requires_action:
                calls = (
                    (run.get("required_action") or {})
                    .get("submit_tool_outputs", {})
                    .get("tool_calls", [])
                )
                outputs = [await self.dispatcher.dispatch(call, message) for call in calls]
                logger.info(
                    "Submitting tool outputs",
                    extra={"thread_id": thread_id, "run_id": run_id, "row_count": len(outputs)},
                )
                run = await self.assistant.submit_tool_outputs(thread_id, run_id, outputs)
            elif status in ACTIVE_STATUSES:
                await self._sleep(self.poll_interval)
                run = await self.assistant.get_run(thread_id, run_id)
            elif status == RunStatus.completed:
                return run
            else:
                raise RunFailedError(
                    thread_id, run_id, str(status), details=run.get("last_error")
                )
            self._track(progress, run)

    @staticmethod
    def _track(progress: _Progress, run: Dict[str, Any]) -> None:
        progress.run_id = run.get("id") or progress.run_id
        progress.status = str(run.get("status") or progress.status)
