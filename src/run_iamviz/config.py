from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .export.render import DEFAULT_RENDERER, OUTPUT_FORMATS
from .util.errors import ConfigError

# --------
# Defaults
# --------
DEFAULT_WORKERS_REGION = 32
DEFAULT_WORKERS_POLICY = 8
DEFAULT_FORMAT = "svg"
COMMANDS = ("render", "list-regions", "list-services")
ALLOWED_CONFIG_KEYS = {
    "project",
    "regions",
    "workers_region",
    "workers_policy",
    "output",
    "output_format",
    "dot_out",
    "print_dot",
    "open_viewer",
    "renderer",
    "progress",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"print_dot", "open_viewer", "progress", "json_logs"}
INT_CONFIG_KEYS = {"workers_region", "workers_policy"}
PATH_CONFIG_KEYS = {"output", "dot_out"}
STR_CONFIG_KEYS = {"project", "output_format", "renderer", "log_level"}
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class RunConfig:
    # Target
    project: Optional[str] = None  # resolved lazily (env / gcloud) when unset
    regions: Optional[List[str]] = None

    # Performance
    workers_region: int = DEFAULT_WORKERS_REGION
    workers_policy: int = DEFAULT_WORKERS_POLICY

    # Output
    output: Optional[Path] = None
    output_format: str = DEFAULT_FORMAT
    dot_out: Optional[Path] = None
    print_dot: bool = False
    open_viewer: bool = True
    renderer: str = DEFAULT_RENDERER

    # UX
    progress: bool = True
    json_logs: bool = False
    log_level: str = "INFO"


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _env_bool(name: str) -> Optional[bool]:
    raw = _env_str(name)
    if raw is None:
        return None
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"Environment variable {name} must be an integer") from e


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ConfigError(f"Config field '{key}' must be an integer")


def _split_regions(value: Any) -> List[str]:
    if isinstance(value, str):
        return [r.strip() for r in value.split(",") if r.strip()]
    if isinstance(value, list) and all(isinstance(r, str) for r in value):
        return [r.strip() for r in value if r.strip()]
    raise ConfigError("Config field 'regions' must be a list of strings or comma-separated string")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key == "regions":
            normalized[key] = _split_regions(value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in PATH_CONFIG_KEYS:
            if not isinstance(value, (str, Path)):
                raise ConfigError(f"Config field '{key}' must be a string path")
            normalized[key] = value
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, str):
                raise ConfigError(f"Config field '{key}' must be a string")
            normalized[key] = value
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="run-iamviz",
        description="Visualize service-to-service invoke permissions for Cloud Run services.",
    )
    subparsers = parser.add_subparsers(dest="command")

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument("--project", default=None, help="Google Cloud project (default: $GOOGLE_CLOUD_PROJECT or gcloud)")
        p.add_argument("--regions", default=None, help="Comma-separated list of regions to scan (default: all)")
        p.add_argument("--workers-region", type=int, default=None, help="Max parallel region queries")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")

    p_render = subparsers.add_parser("render", help="Discover services and render the invocation graph")
    add_common(p_render)
    p_render.add_argument("--workers-policy", type=int, default=None, help="Max parallel IAM policy lookups")
    p_render.add_argument("--output", type=Path, default=None, help="Image path (default: a new temp file)")
    p_render.add_argument("--format", dest="output_format", choices=OUTPUT_FORMATS, default=None, help="Image format")
    p_render.add_argument("--dot-out", type=Path, default=None, help="Also write the DOT graph description here")
    p_render.add_argument(
        "--print-dot",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Echo the DOT graph description to stdout",
    )
    p_render.add_argument(
        "--open",
        dest="open_viewer",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Open the rendered image in the default viewer (default: on)",
    )
    p_render.add_argument("--renderer", default=None, help="Graphviz executable (default: dot)")
    p_render.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show progress bars on a terminal (default: on)",
    )

    p_lr = subparsers.add_parser("list-regions", help="List Cloud Run regions for the project")
    add_common(p_lr)

    p_ls = subparsers.add_parser("list-services", help="List Cloud Run services and their identities")
    add_common(p_ls)
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns (command, RunConfig); command defaults to "render".
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = getattr(ns, "command", None) or "render"

    base: Dict[str, Any] = {
        "workers_region": DEFAULT_WORKERS_REGION,
        "workers_policy": DEFAULT_WORKERS_POLICY,
        "output_format": DEFAULT_FORMAT,
        "print_dot": False,
        "open_viewer": True,
        "renderer": DEFAULT_RENDERER,
        "progress": True,
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "project": _env_str("GOOGLE_CLOUD_PROJECT"),
            "regions": _env_str("RUN_IAMVIZ_REGIONS"),
            "workers_region": _env_int("RUN_IAMVIZ_WORKERS_REGION"),
            "workers_policy": _env_int("RUN_IAMVIZ_WORKERS_POLICY"),
            "output": _env_str("RUN_IAMVIZ_OUTPUT"),
            "output_format": _env_str("RUN_IAMVIZ_FORMAT"),
            "dot_out": _env_str("RUN_IAMVIZ_DOT_OUT"),
            "print_dot": _env_bool("RUN_IAMVIZ_PRINT_DOT"),
            "open_viewer": _env_bool("RUN_IAMVIZ_OPEN"),
            "renderer": _env_str("RUN_IAMVIZ_RENDERER"),
            "progress": _env_bool("RUN_IAMVIZ_PROGRESS"),
            "json_logs": _env_bool("RUN_IAMVIZ_JSON_LOGS"),
            "log_level": _env_str("RUN_IAMVIZ_LOG_LEVEL"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {key: getattr(ns, key, None) for key in sorted(ALLOWED_CONFIG_KEYS)}
    )

    merged = {**base, **file_cfg, **env_cfg, **cli_cfg}

    regions_raw = merged.get("regions")
    regions = _split_regions(regions_raw) if regions_raw is not None else None

    output_format = str(merged["output_format"]).lower()
    if output_format not in OUTPUT_FORMATS:
        raise ConfigError(f"Output format must be one of: {', '.join(OUTPUT_FORMATS)}")

    workers_region = int(merged["workers_region"])
    workers_policy = int(merged["workers_policy"])
    if workers_region < 1 or workers_policy < 1:
        raise ConfigError("Worker counts must be positive integers")

    log_level = str(merged["log_level"] or "INFO").upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"Log level must be one of: {', '.join(LOG_LEVELS)}")

    cfg = RunConfig(
        project=str(merged["project"]) if merged.get("project") else None,
        regions=regions or None,
        workers_region=workers_region,
        workers_policy=workers_policy,
        output=Path(merged["output"]) if merged.get("output") else None,
        output_format=output_format,
        dot_out=Path(merged["dot_out"]) if merged.get("dot_out") else None,
        print_dot=bool(merged["print_dot"]),
        open_viewer=bool(merged["open_viewer"]),
        renderer=str(merged["renderer"] or DEFAULT_RENDERER),
        progress=bool(merged["progress"]),
        json_logs=bool(merged["json_logs"]),
        log_level=log_level,
    )
    return command, cfg
