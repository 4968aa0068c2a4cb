from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    API_ERROR = 4
    RENDER_ERROR = 5
    OUTPUT_ERROR = 6
    SETUP_ERROR = 7


class IamVizError(Exception):
    """Base error for the visualization pipeline."""


class ConfigError(IamVizError):
    """Raised for configuration or argument issues."""


class SetupError(IamVizError):
    """Raised when the local environment is missing something (renderer, project)."""


class AuthResolutionError(IamVizError):
    """Raised when Google credentials cannot be resolved."""


class CloudAPIError(IamVizError):
    """Raised when a Cloud Run API call fails."""


class RenderError(IamVizError):
    """Raised when the external graph renderer fails."""


class OutputError(IamVizError):
    """Raised when writing or opening the rendered artifact fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, SetupError):
        return int(ExitCode.SETUP_ERROR)
    if isinstance(exc, AuthResolutionError):
        return int(ExitCode.AUTH_ERROR)
    if isinstance(exc, CloudAPIError):
        return int(ExitCode.API_ERROR)
    if isinstance(exc, RenderError):
        return int(ExitCode.RENDER_ERROR)
    if isinstance(exc, (OutputError, IamVizError)):
        return int(ExitCode.OUTPUT_ERROR)
    return 1


def _gcp_error_types() -> tuple[type[BaseException], ...]:
    try:
        from google.auth.exceptions import GoogleAuthError  # type: ignore
        from googleapiclient.errors import Error as ApiClientError  # type: ignore
    except Exception:
        return ()
    return (ApiClientError, GoogleAuthError)


def _transport_error_types() -> tuple[type[BaseException], ...]:
    # Socket timeouts, connection resets and SSL failures are all OSError.
    try:
        from httplib2 import HttpLib2Error  # type: ignore
    except Exception:
        return (OSError,)
    return (OSError, HttpLib2Error)


def is_gcp_error(exc: BaseException) -> bool:
    """
    Return True if the exception comes from the Google API client or google-auth.
    """
    gcp_types = _gcp_error_types()
    if gcp_types and isinstance(exc, gcp_types):
        return True
    module = exc.__class__.__module__
    return module.startswith("googleapiclient.") or module.startswith("google.auth")


def is_auth_refresh_error(exc: BaseException) -> bool:
    """
    Return True for google-auth RefreshError: credentials expired or were revoked mid-run.
    """
    try:
        from google.auth.exceptions import RefreshError  # type: ignore
    except Exception:
        RefreshError = None  # type: ignore
    if RefreshError is not None and isinstance(exc, RefreshError):
        return True
    return exc.__class__.__name__ == "RefreshError" and exc.__class__.__module__.startswith("google.auth")


def _http_error_detail(exc: BaseException) -> str:
    status = getattr(getattr(exc, "resp", None), "status", None)
    reason = getattr(exc, "reason", None)
    if status and reason:
        return f"HTTP {status}: {reason}"
    return str(exc) or exc.__class__.__name__


def map_gcp_error(exc: BaseException, context: str) -> IamVizError | None:
    """
    Wrap errors raised by a remote call so the message names the resource that failed.

    Credential refresh failures become AuthResolutionError; API and transport
    failures become CloudAPIError. Anything else is left to propagate.
    """
    if is_auth_refresh_error(exc):
        return AuthResolutionError(f"{context}: credentials could not be refreshed: {exc}")
    if is_gcp_error(exc) or isinstance(exc, _transport_error_types()):
        return CloudAPIError(f"{context}: {_http_error_detail(exc)}")
    return None
