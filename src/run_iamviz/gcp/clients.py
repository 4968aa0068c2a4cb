from __future__ import annotations

import threading
from typing import Any, Dict, Optional, Tuple

from ..util.errors import AuthResolutionError

try:
    from googleapiclient.discovery import build  # type: ignore
except Exception:  # pragma: no cover - surfaced when the client is first built
    build = None  # type: ignore

RUN_API_NAME = "run"
RUN_API_VERSION = "v1"

# httplib2 transports are not thread-safe, so clients are cached per thread.
_LOCAL = threading.local()


def regional_endpoint(region_id: str) -> str:
    """
    Namespaced (Knative) resources are only served from the regional endpoint.
    """
    return f"https://{region_id}-run.googleapis.com/"


def _cache() -> Dict[Tuple[int, Optional[str]], Any]:
    cache = getattr(_LOCAL, "clients", None)
    if cache is None:
        cache = {}
        _LOCAL.clients = cache
    return cache


def clear_client_cache() -> None:
    _LOCAL.clients = {}


def make_run_client(credentials: Any, region_id: Optional[str] = None) -> Any:
    """
    Build a Cloud Run Admin API v1 client, optionally bound to a regional endpoint.
    """
    if build is None:  # pragma: no cover
        raise AuthResolutionError("google-api-python-client not installed. Install dependencies: pip install .")
    client_options = {"api_endpoint": regional_endpoint(region_id)} if region_id else None
    return build(
        RUN_API_NAME,
        RUN_API_VERSION,
        credentials=credentials,
        client_options=client_options,
        cache_discovery=False,
    )


def get_run_client(credentials: Any, region_id: Optional[str] = None) -> Any:
    """
    Return this thread's client for the global (region_id=None) or a regional endpoint.
    """
    cache = _cache()
    key = (id(credentials), region_id)
    client = cache.get(key)
    if client is None:
        client = make_run_client(credentials, region_id)
        cache[key] = client
    return client
