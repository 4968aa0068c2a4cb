from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from shutil import which
from typing import Any, Optional, Sequence

from ..util.errors import AuthResolutionError, SetupError

try:
    import google.auth  # type: ignore
    import google.auth.exceptions  # type: ignore
except Exception:  # pragma: no cover - import error surfaced at runtime/CI
    google = None  # type: ignore

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
PROJECT_ENV_VAR = "GOOGLE_CLOUD_PROJECT"
GCLOUD_PROJECT_COMMAND = ("gcloud", "config", "get-value", "core/project", "-q")


@dataclass(frozen=True)
class AuthContext:
    """
    Resolved Google credentials plus the project they are used against.
    """

    credentials: Any
    project: str


def resolve_credentials(scopes: Sequence[str] = (CLOUD_PLATFORM_SCOPE,)) -> Any:
    """
    Load Application Default Credentials (env var key file, gcloud ADC,
    metadata server) with the given scopes.
    """
    if google is None:
        raise AuthResolutionError(
            "google-auth not installed. Install dependencies and try again: pip install ."
        )
    try:
        credentials, _ = google.auth.default(scopes=list(scopes))
    except google.auth.exceptions.DefaultCredentialsError as e:
        raise AuthResolutionError(
            f"Failed to resolve Google application default credentials: {e}. "
            "Run `gcloud auth application-default login` or set GOOGLE_APPLICATION_CREDENTIALS."
        ) from e
    return credentials


def _project_from_gcloud() -> str:
    gcloud = which(GCLOUD_PROJECT_COMMAND[0])
    if not gcloud:
        raise SetupError(
            f"No project given and '{GCLOUD_PROJECT_COMMAND[0]}' was not found on PATH. "
            f"Pass --project or set {PROJECT_ENV_VAR}."
        )
    proc = subprocess.run(
        [gcloud, *GCLOUD_PROJECT_COMMAND[1:]],
        text=True,
        capture_output=True,
    )
    if proc.returncode != 0:
        detail = (proc.stderr or "").strip() or f"gcloud exited with code {proc.returncode}"
        raise SetupError(f"Failed to read core/project from gcloud config: {detail}")
    return (proc.stdout or "").strip()


def infer_project(explicit: Optional[str] = None) -> str:
    """
    Resolve the target project: explicit value, then GOOGLE_CLOUD_PROJECT, then
    the active gcloud configuration.
    """
    project = (explicit or "").strip() or (os.getenv(PROJECT_ENV_VAR) or "").strip()
    if not project:
        project = _project_from_gcloud()
    if not project:
        raise SetupError(f"Could not determine the Google Cloud project. Pass --project or set {PROJECT_ENV_VAR}.")
    return project


def resolve_auth(project: Optional[str] = None) -> AuthContext:
    resolved_project = infer_project(project)
    return AuthContext(credentials=resolve_credentials(), project=resolved_project)
