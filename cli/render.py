from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_reply(payload: Mapping[str, Any]) -> None:
    status = payload.get("runStatus")
    color = typer.colors.GREEN if status == "completed" else typer.colors.YELLOW
    typer.secho(f"[{status}] thread={payload.get('threadId')}", fg=color)
    typer.echo(payload.get("response") or "")


def render_weather(payload: Mapping[str, Any]) -> None:
    echo_heading(f"Weather for {payload.get('location')}")
    echo_key_values(
        [
            ("temperature_f", payload.get("temperature_f")),
            ("precipitation_mm", payload.get("precipitation_mm")),
            ("wind_mph", payload.get("wind_mph")),
        ]
    )


def render_buckets(buckets: Mapping[str, Dict[str, Any]], unit: str) -> None:
    echo_heading(f"Rollup ({len(buckets)} buckets, temperature in °{unit})")
    if not buckets:
        typer.echo("No readings in range.")
        return
    for key, bucket in buckets.items():
        typer.echo()
        typer.secho(f"{key}  readings={bucket.get('count')}", bold=True)
        columns = bucket.get("columns") or {}
        if not columns:
            typer.echo("  no matching columns")
            continue
        for name, stats in columns.items():
            typer.echo(
                f"  {name}: avg={stats.get('avg')} "
                f"min={stats.get('min')} @ {stats.get('min_at')} "
                f"max={stats.get('max')} @ {stats.get('max_at')} "
                f"last={stats.get('last')}"
            )
