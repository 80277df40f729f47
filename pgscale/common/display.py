from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TaskProgressColumn, TextColumn
from rich.theme import Theme

from pgscale.common.models import ProgressInfo

if TYPE_CHECKING:
    from pgscale.common.models import ScalingResult
    from pgscale.scaling.engine import ScalingEngine

SLATE = "#7A8CA5"
AMBER = "#FFB000"


_pgscale_theme = Theme(
    {
        "primary": SLATE,
        "accent": AMBER,
        "success": "green bold",
        "error": "red bold",
        "warning": "yellow bold",
        "info": "blue bold",
    }
)


_console: Console | None = None


def get_theme() -> Theme:
    return _pgscale_theme


def get_console(force_terminal: bool | None = None) -> Console:
    global _console

    if _console is None or force_terminal is not None:
        _console = Console(
            theme=_pgscale_theme,
            force_terminal=force_terminal,
            legacy_windows=False,
        )

    return _console


def format_eta(seconds: float) -> str:
    """Compact duration for the ETA column.

    Example:
        >>> format_eta(3725)
        '1h02m05s'
        >>> format_eta(42)
        '42s'
    """
    seconds = max(0, int(round(seconds)))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{secs:02d}s"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def create_scaling_progress(console: Console | None = None) -> Progress:
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=None, complete_style="primary", finished_style="success"),
        TaskProgressColumn(),
        TextColumn("[info]ETA: {task.fields[eta]}", justify="right"),
        TextColumn("|"),
        TextColumn("[accent]Band {task.fields[band]}", justify="right"),
        TextColumn("|"),
        TextColumn("[success]{task.fields[tps]} TPS", justify="right"),
        console=console or get_console(),
    )


def update_scaling_progress(
    progress: Progress, task_id: TaskID, info: ProgressInfo, last_tps: float | None
) -> None:
    progress.update(
        task_id,
        total=max(info.total_bands, 1),
        completed=info.completed_bands,
        eta=format_eta(info.estimated_remaining_seconds),
        band=f"{info.current_band}/{info.total_bands}",
        tps="-" if last_tps is None else f"{last_tps:.1f}",
    )


async def watch_progress(
    engine: ScalingEngine,
    stop: asyncio.Event,
    progress: Progress | None = None,
    interval: float = 1.0,
) -> ProgressInfo:
    """Poll engine progress into a rich progress bar until `stop` is set.

    Returns:
        The last ProgressInfo observed
    """
    progress = progress or create_scaling_progress()
    task_id = progress.add_task(
        f"Scaling {engine.workload_name}", total=1, eta="-", band="0/0", tps="-"
    )

    while True:
        info = engine.get_progress()
        bands = engine.get_results()
        update_scaling_progress(progress, task_id, info, bands[-1].total_tps if bands else None)
        if stop.is_set():
            return info
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=interval)


async def run_with_progress(
    engine: ScalingEngine,
    cancel_token: asyncio.Event | None = None,
    console: Console | None = None,
    interval: float = 1.0,
) -> ScalingResult:
    """Run the engine while rendering a live progress bar."""
    progress = create_scaling_progress(console)
    stop = asyncio.Event()
    with progress:
        watcher = asyncio.create_task(watch_progress(engine, stop, progress, interval))
        try:
            return await engine.run(cancel_token)
        finally:
            stop.set()
            await watcher
