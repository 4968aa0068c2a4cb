from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional, Tuple

from .auth.providers import resolve_auth
from .config import RunConfig, load_run_config
from .export.invocation_graph import build_invocation_graph, dangling_grants, invocation_edges
from .export.render import Opener, file_url, find_renderer, open_in_viewer, render_image, write_artifact
from .gcp.api import CloudRunAPI, GoogleCloudRunAPI
from .gcp.discovery import discover_services
from .gcp.permissions import collect_bindings
from .gcp.regions import get_regions
from .logging import LogConfig, get_logger, setup_logging
from .model import PermissionBinding, Region, Service
from .util.errors import ConfigError, OutputError, as_exit_code
from .util.rich_progress import RunProgress, render_run_summary_table

LOG = get_logger(__name__)

ApiFactory = Callable[[RunConfig], Tuple[str, CloudRunAPI]]


@dataclass(frozen=True)
class RenderResult:
    artifact: Path
    dot_text: str
    services: List[Service]
    bindings: List[PermissionBinding]
    metrics: Dict[str, int]


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    **extra: Any,
) -> None:
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(step)
        elif phase in {"complete", "error"}:
            duration_ms = timers.finish(step)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def default_api_factory(cfg: RunConfig) -> Tuple[str, CloudRunAPI]:
    ctx = resolve_auth(cfg.project)
    return ctx.project, GoogleCloudRunAPI(ctx)


def _discover(
    api: CloudRunAPI,
    project: str,
    cfg: RunConfig,
    timers: _StepTimers,
    progress: Optional[RunProgress] = None,
) -> Tuple[List[Region], List[Service]]:
    _log_event(LOG, logging.INFO, "Listing Cloud Run regions", step="regions", phase="start", timers=timers, project=project)
    regions = get_regions(api, project, cfg.regions)
    for r in regions:
        LOG.debug("--> %s", r.region_id)
    _log_event(
        LOG, logging.INFO, f"Found {len(regions)} regions", step="regions", phase="complete", timers=timers, regions=len(regions)
    )

    _log_event(LOG, logging.INFO, "Listing services in all regions", step="discovery", phase="start", timers=timers)
    if progress is not None:
        progress.start_discovery([r.region_id for r in regions])
    services = discover_services(
        api,
        project,
        regions,
        cfg.workers_region,
        on_region_done=(lambda region, n: progress.region_done(region.region_id, n)) if progress else None,
    )
    for s in services:
        LOG.debug("name=%s region=%s acct=%s", s.name, s.region.region_id, s.service_account)
    _log_event(
        LOG,
        logging.INFO,
        f"Discovered {len(services)} services",
        step="discovery",
        phase="complete",
        timers=timers,
        services=len(services),
    )
    return regions, services


def run_render(
    cfg: RunConfig,
    api: CloudRunAPI,
    project: str,
    *,
    opener: Opener = open_in_viewer,
    stdout: Any = None,
) -> RenderResult:
    """
    Full pipeline: regions -> services -> invoker bindings -> graph -> image.
    Nothing is written unless every stage succeeds.
    """
    timers = _StepTimers()
    renderer = find_renderer(cfg.renderer)

    with RunProgress(enabled=cfg.progress and not cfg.json_logs) as progress:
        regions, services = _discover(api, project, cfg, timers, progress)

        _log_event(LOG, logging.INFO, "Querying IAM policies", step="permissions", phase="start", timers=timers)
        progress.start_permissions(len(services))
        bindings = collect_bindings(api, services, cfg.workers_policy, on_service_done=lambda _svc: progress.permission_done())
        _log_event(
            LOG,
            logging.INFO,
            f"Collected {len(bindings)} invoker bindings",
            step="permissions",
            phase="complete",
            timers=timers,
            bindings=len(bindings),
        )

    edges = invocation_edges(services, bindings)
    dangling = dangling_grants(services, bindings)
    for identity, targets in dangling.items():
        LOG.info(
            "identity %s can invoke %s but runs no discovered service",
            identity,
            ", ".join(f"{t.region.region_id}/{t.name}" for t in targets),
            extra={"identity": identity},
        )

    _log_event(LOG, logging.INFO, "Rendering graph", step="render", phase="start", timers=timers)
    dot_text = build_invocation_graph(services, bindings).to_dot()
    if cfg.print_dot:
        (stdout or sys.stdout).write(dot_text)
    image = render_image(dot_text, renderer, cfg.output_format)
    LOG.info("converted to %s successfully", cfg.output_format)

    artifact = write_artifact(image, cfg.output, suffix=f".{cfg.output_format}")
    if cfg.dot_out is not None:
        try:
            cfg.dot_out.parent.mkdir(parents=True, exist_ok=True)
            cfg.dot_out.write_text(dot_text, encoding="utf-8")
        except OSError as e:
            # No partial output.
            artifact.unlink(missing_ok=True)
            raise OutputError(f"failed to write DOT file: {e}") from e
    _log_event(
        LOG,
        logging.INFO,
        f"written file to: {artifact}",
        step="render",
        phase="complete",
        timers=timers,
        artifact=str(artifact),
        edges=len(edges),
    )

    if cfg.open_viewer:
        LOG.info("launching in browser...")
        opener(file_url(artifact))

    metrics = {
        "regions": len(regions),
        "services": len(services),
        "bindings": len(bindings),
        "edges": len(edges),
        "dangling_grants": len(dangling),
    }
    render_run_summary_table(
        enabled=progress.enabled,
        project=project,
        metrics=metrics,
        regions=[r.region_id for r in regions],
        artifact=str(artifact),
    )
    return RenderResult(artifact=artifact, dot_text=dot_text, services=services, bindings=bindings, metrics=metrics)


def cmd_render(cfg: RunConfig, api_factory: ApiFactory = default_api_factory, opener: Opener = open_in_viewer) -> int:
    # Fail on a missing renderer before touching credentials or the network.
    find_renderer(cfg.renderer)
    project, api = api_factory(cfg)
    LOG.info("project=%s", project)
    run_render(cfg, api, project, opener=opener)
    return 0


def cmd_list_regions(cfg: RunConfig, api_factory: ApiFactory = default_api_factory) -> int:
    project, api = api_factory(cfg)
    for r in get_regions(api, project, cfg.regions):
        print(f"{r.region_id}\t{r.display_name}")
    return 0


def cmd_list_services(cfg: RunConfig, api_factory: ApiFactory = default_api_factory) -> int:
    project, api = api_factory(cfg)
    _, services = _discover(api, project, cfg, _StepTimers())
    for s in services:
        print(f"{s.region.region_id}\t{s.name}\t{s.service_account}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "render":
            code = cmd_render(cfg)
        elif command == "list-regions":
            code = cmd_list_regions(cfg)
        elif command == "list-services":
            code = cmd_list_services(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Piping list output into `head` closes stdout early.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
