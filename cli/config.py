from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_TIMEOUT = 120.0
DEFAULT_THREAD_FILE = Path.home() / ".probe-chat" / "thread"

_BASE_URL_ENV = "API_BASE_URL"
_POLL_INTERVAL_ENV = "CLI_POLL_INTERVAL"
_TIMEOUT_ENV = "CLI_POLL_TIMEOUT"
_THREAD_FILE_ENV = "CLI_THREAD_FILE"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_timeout: float = DEFAULT_TIMEOUT
    thread_file: Path = DEFAULT_THREAD_FILE

    def load_thread_id(self) -> Optional[str]:
        """Return the thread remembered from the previous ``chat`` call."""
        try:
            value = self.thread_file.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return value or None

    def save_thread_id(self, thread_id: str) -> None:
        self.thread_file.parent.mkdir(parents=True, exist_ok=True)
        self.thread_file.write_text(thread_id, encoding="utf-8")

    def forget_thread(self) -> None:
        self.thread_file.unlink(missing_ok=True)


def _positive_float(value: Optional[str], default: float) -> float:
    candidate = (value or "").strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    poll_interval: Optional[float] = None,
    poll_timeout: Optional[float] = None,
    thread_file: Optional[Path] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if poll_interval is None:
        poll_interval = _positive_float(os.getenv(_POLL_INTERVAL_ENV), DEFAULT_POLL_INTERVAL)
    if poll_timeout is None:
        poll_timeout = _positive_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    if thread_file is None:
        env_path = (os.getenv(_THREAD_FILE_ENV) or "").strip()
        thread_file = Path(env_path).expanduser() if env_path else DEFAULT_THREAD_FILE
    return CLIConfig(
        base_url=url.rstrip("/"),
        poll_interval=poll_interval,
        poll_timeout=poll_timeout,
        thread_file=thread_file,
    )
