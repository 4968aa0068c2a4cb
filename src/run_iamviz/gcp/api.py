from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from ..auth.providers import AuthContext
from ..model import Region, Service, region_from_api, service_from_api
from ..util.errors import map_gcp_error
from ..util.pagination import paginate
from .clients import get_run_client

SERVICES_PAGE_LIMIT = 500


class CloudRunAPI(Protocol):
    """
    Read-only Cloud Run operations the pipeline depends on. Tests substitute
    an in-memory implementation.
    """

    def list_regions(self, project: str) -> List[Region]:
        ...

    def list_services(
        self,
        project: str,
        region: Region,
        *,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[Service]:
        ...

    def get_policy(self, service: Service) -> Dict[str, Any]:
        ...


def _execute(request: Any, context: str) -> Dict[str, Any]:
    try:
        return request.execute() or {}
    except Exception as e:
        mapped = map_gcp_error(e, context)
        if mapped:
            raise mapped from e
        raise


class GoogleCloudRunAPI:
    """
    CloudRunAPI backed by the Cloud Run Admin API v1 discovery client.
    """

    def __init__(self, ctx: AuthContext) -> None:
        self._credentials = ctx.credentials

    def list_regions(self, project: str) -> List[Region]:
        locations = get_run_client(self._credentials).projects().locations()

        def fetch(page: Optional[str]) -> Tuple[List[Region], Optional[str]]:
            kwargs: Dict[str, Any] = {"name": f"projects/{project}"}
            if page:
                kwargs["pageToken"] = page
            resp = _execute(locations.list(**kwargs), f"Failed to list Cloud Run regions for project {project!r}")
            return [region_from_api(loc) for loc in resp.get("locations", [])], resp.get("nextPageToken")

        return list(paginate(fetch))

    def list_services(
        self,
        project: str,
        region: Region,
        *,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[Service]:
        services = get_run_client(self._credentials, region.region_id).namespaces().services()

        def fetch(page: Optional[str]) -> Tuple[List[Service], Optional[str]]:
            kwargs: Dict[str, Any] = {"parent": f"namespaces/{project}", "limit": SERVICES_PAGE_LIMIT}
            if page:
                kwargs["continue_"] = page
            resp = _execute(
                services.list(**kwargs),
                f"Failed to query services in {region.region_id!r}",
            )
            items = [service_from_api(item, region) for item in resp.get("items", [])]
            return items, (resp.get("metadata") or {}).get("continue")

        return list(paginate(fetch, should_stop=should_stop))

    def get_policy(self, service: Service) -> Dict[str, Any]:
        services = get_run_client(self._credentials).projects().locations().services()
        return _execute(
            services.getIamPolicy(resource=service.resource_name),
            f"Failed to query permissions for service {service.name!r} in {service.region.region_id!r}",
        )
