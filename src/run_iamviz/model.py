from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple


@dataclass(frozen=True)
class Region:
    region_id: str
    display_name: str = ""

    @property
    def label(self) -> str:
        if self.display_name:
            return f"{self.region_id} ({self.display_name})"
        return self.region_id


@dataclass(frozen=True)
class Service:
    """
    A Cloud Run service as discovered in one region.

    namespace is the owning project as the API reports it (often the project
    number). service_account is the identity the service runs as.
    """

    name: str
    namespace: str
    region: Region
    service_account: str

    @property
    def key(self) -> Tuple[str, str]:
        return (self.region.region_id, self.name)

    @property
    def resource_name(self) -> str:
        return f"projects/{self.namespace}/locations/{self.region.region_id}/services/{self.name}"


@dataclass(frozen=True)
class PermissionBinding:
    """identity may invoke service."""

    service: Service
    identity: str


def service_from_api(item: Mapping[str, Any], region: Region) -> Service:
    """
    Build a Service from a Knative-style serving.knative.dev/v1 Service document.
    """
    metadata: Dict[str, Any] = dict(item.get("metadata") or {})
    spec = (item.get("spec") or {}).get("template", {}).get("spec", {}) or {}
    return Service(
        name=str(metadata.get("name") or ""),
        namespace=str(metadata.get("namespace") or ""),
        region=region,
        service_account=str(spec.get("serviceAccountName") or ""),
    )


def region_from_api(item: Mapping[str, Any]) -> Region:
    region_id = item.get("locationId")
    if not region_id:
        # name has the form projects/<p>/locations/<id>
        region_id = str(item.get("name") or "").rsplit("/", 1)[-1]
    return Region(region_id=str(region_id), display_name=str(item.get("displayName") or ""))
