from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..logging import get_logger
from ..model import PermissionBinding, Service
from ..util.concurrency import parallel_map_ordered
from .api import CloudRunAPI

LOG = get_logger(__name__)

RUN_INVOKER_ROLE = "roles/run.invoker"


def invoker_members(policy: Mapping[str, Any], role: str = RUN_INVOKER_ROLE) -> List[str]:
    """
    Return identities bound to role in an IAM policy, without the member type
    prefix ("serviceAccount:a@b" -> "a@b").

    Special members without a prefix (allUsers, allAuthenticatedUsers) are
    skipped; they cannot match a service identity.
    """
    members: List[str] = []
    seen = set()
    for binding in policy.get("bindings") or []:
        if binding.get("role") != role:
            continue
        for member in binding.get("members") or []:
            _, sep, identity = str(member).partition(":")
            if not sep or not identity or identity in seen:
                continue
            seen.add(identity)
            members.append(identity)
    return members


def collect_bindings(
    api: CloudRunAPI,
    services: Sequence[Service],
    max_workers: int,
    *,
    on_service_done: Optional[Callable[[Service], None]] = None,
) -> List[PermissionBinding]:
    """
    Fetch the IAM policy of every service and return its invoker bindings.
    The first failing policy lookup aborts the whole collection.
    """

    def _query(svc: Service) -> List[str]:
        return invoker_members(api.get_policy(svc))

    def _done(svc: Service, callers: List[str]) -> None:
        for caller in callers:
            LOG.debug("authorized caller: %s", caller, extra={"service": svc.name, "region": svc.region.region_id})
        if on_service_done is not None:
            on_service_done(svc)

    callers_by_service = parallel_map_ordered(_query, services, max_workers, on_result=_done)
    bindings: List[PermissionBinding] = []
    for svc, callers in zip(services, callers_by_service):
        bindings.extend(PermissionBinding(service=svc, identity=c) for c in callers)
    return bindings


def bindings_by_identity(bindings: Sequence[PermissionBinding]) -> Dict[str, List[Service]]:
    out: Dict[str, List[Service]] = {}
    for b in bindings:
        targets = out.setdefault(b.identity, [])
        if b.service not in targets:
            targets.append(b.service)
    return out
