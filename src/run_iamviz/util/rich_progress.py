from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

try:
    from rich.console import Console
    from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
    from rich.table import Table
except Exception:  # pragma: no cover - fallback when rich isn't available
    Console = None  # type: ignore[assignment]
    Progress = None  # type: ignore[assignment]
    BarColumn = None  # type: ignore[assignment]
    TaskProgressColumn = None  # type: ignore[assignment]
    TextColumn = None  # type: ignore[assignment]
    TimeElapsedColumn = None  # type: ignore[assignment]
    Table = None  # type: ignore[assignment]


def _format_region_counts(counts: Dict[str, int], *, max_regions: int = 4) -> str:
    done = sorted((name, count) for name, count in counts.items() if count)
    if not done:
        return ""
    shown = done[:max_regions]
    tail = len(done) - len(shown)
    rendered = ", ".join(f"{name}={count}" for name, count in shown)
    if tail > 0:
        rendered = f"{rendered} (+{tail} more)"
    return rendered


def stderr_console() -> Optional[Console]:
    return Console(stderr=True) if Console else None


class RunProgress:
    """
    Transient progress bars on stderr for region discovery and policy lookups.
    Every method is a no-op when disabled or when stderr is not a terminal.
    """

    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._console = console or stderr_console()
        self._enabled = bool(enabled and Progress and self._console is not None and self._console.is_terminal)
        self._progress = None
        self._discovery_task: Optional[int] = None
        self._policy_task: Optional[int] = None
        self._region_counts: Dict[str, int] = {}
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("{task.fields[regions]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> RunProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_discovery(self, regions: Sequence[str]) -> None:
        if not self._enabled or not self._progress:
            return
        self._region_counts = {region: 0 for region in regions}
        self._discovery_task = self._progress.add_task(
            "Regions",
            total=len(regions),
            regions="",
        )

    def region_done(self, region: str, services: int) -> None:
        if not self._enabled or not self._progress or self._discovery_task is None:
            return
        self._region_counts[region] = services
        self._progress.update(
            self._discovery_task,
            advance=1,
            regions=_format_region_counts(self._region_counts),
        )

    def start_permissions(self, total: int) -> None:
        if not self._enabled or not self._progress:
            return
        self._policy_task = self._progress.add_task("IAM policies", total=total, regions="")

    def permission_done(self) -> None:
        if not self._enabled or not self._progress or self._policy_task is None:
            return
        self._progress.update(self._policy_task, advance=1)


def render_run_summary_table(
    *,
    enabled: bool,
    project: str,
    metrics: Dict[str, Any],
    regions: Sequence[str],
    artifact: str,
    console: Optional[Console] = None,
) -> None:
    if not enabled or not Table or not Console:
        return
    table = Table(title="Invocation Graph", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Project", project)
    table.add_row("Regions scanned", str(len(regions)))
    table.add_row("Services", str(metrics.get("services", 0)))
    table.add_row("Invoker bindings", str(metrics.get("bindings", 0)))
    table.add_row("Edges", str(metrics.get("edges", 0)))
    table.add_row("Dangling grants", str(metrics.get("dangling_grants", 0)))
    table.add_row("Artifact", artifact)
    (console or stderr_console()).print(table)
