from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_buckets, render_reply, render_weather
from services.columns import kind_predicate, parse_kinds
from services.csv_parser import parse_csv
from services.rollup import PERIODS, RollupEngine, buckets_to_dict, clip_buckets

FOLLOW_UP_MESSAGE = "Any update on my last question?"


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for talking to the probe chat service and inspecting probe CSV.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between follow-up asks while a run is still working.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to keep asking for a finished reply.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("chat")
def chat_command(
    ctx: typer.Context,
    message: str = typer.Argument(..., help="Message to send to the assistant."),
    thread_id: Optional[str] = typer.Option(
        None,
        "--thread-id",
        "-t",
        help="Continue this thread (defaults to the thread from the previous call).",
    ),
    new_thread: bool = typer.Option(False, "--new", help="Start a fresh conversation."),
    wait: bool = typer.Option(
        True,
        "--wait/--no-wait",
        help="Keep asking on the same thread until the assistant finishes.",
    ),
) -> None:
    """Send one chat message and print the assistant's reply."""
    state = _get_state(ctx)
    if new_thread:
        state.config.forget_thread()
        thread_id = None
    elif thread_id is None:
        thread_id = state.config.load_thread_id()

    payload = state.client.send_message(message, thread_id)
    state.config.save_thread_id(payload["threadId"])

    if wait:
        payload = state.client.wait_for_reply(
            payload,
            follow_up=FOLLOW_UP_MESSAGE,
            interval=state.config.poll_interval,
            timeout=state.config.poll_timeout,
        )
    render_reply(payload)


@app.command("weather")
def weather_command(
    ctx: typer.Context,
    location: Optional[str] = typer.Argument(None, help="Place name or five-digit ZIP."),
) -> None:
    """Show current weather through the service's weather endpoint."""
    state = _get_state(ctx)
    is_zip = bool(location and location.isdigit() and len(location) == 5)
    payload = state.client.get_weather(
        query=None if is_zip else location,
        zip_code=location if is_zip else None,
    )
    render_weather(payload)


@app.command("summarize")
def summarize_command(
    csv_path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Probe CSV export."
    ),
    period: str = typer.Option("day", "--period", "-p", help="Rollup period: day or month."),
    start_day: Optional[str] = typer.Option(None, "--start-day", help="First day to keep."),
    end_day: Optional[str] = typer.Option(None, "--end-day", help="Last day to keep."),
    kind: List[str] = typer.Option(
        [], "--kind", "-k", help="temperature, moisture or battery (repeatable)."
    ),
    unit: str = typer.Option("C", "--unit", "-u", help="Temperature unit: C or F."),
) -> None:
    """Roll up a local probe CSV without contacting the service."""
    if period not in PERIODS:
        raise typer.BadParameter(f"period must be one of {', '.join(PERIODS)}")
    unit = unit.upper()
    if unit not in {"C", "F"}:
        raise typer.BadParameter("unit must be C or F")

    parsed = parse_csv(csv_path.read_text(encoding="utf-8-sig"))
    if not parsed.ok:
        typer.secho(f"Cannot summarize {csv_path}: {parsed.error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    engine = RollupEngine(kind_predicate(parse_kinds(kind)), period=period)
    buckets = clip_buckets(engine.rollup(parsed.headers, parsed.readings), start_day, end_day)
    if parsed.skipped_rows:
        typer.echo(f"Skipped {parsed.skipped_rows} rows without a usable timestamp.")
    render_buckets(buckets_to_dict(buckets, unit), unit)
