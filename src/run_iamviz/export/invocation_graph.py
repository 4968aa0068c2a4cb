from __future__ import annotations

import html
from typing import Dict, List, Sequence, Tuple

from ..gcp.permissions import bindings_by_identity
from ..model import PermissionBinding, Region, Service
from .dot import DotGraph, HtmlLabel

# http://www.graphviz.org/doc/info/colors.html
PALETTE = (
    "coral1",
    "cadetblue",
    "gold2",
    "aquamarine2",
    "lightpink",
    "lightsalmon",
    "springgreen",
    "wheat1",
    "lavender",
    "chartreuse",
)

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193

CONSOLE_URL = "https://console.cloud.google.com/run/detail/{region}/{name}/{page}?project={project}"


def fnv1a_32(value: str) -> int:
    h = _FNV32_OFFSET
    for byte in value.encode("utf-8"):
        h ^= byte
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h


def color_for(name: str) -> str:
    """Stable palette colour for a service name, identical across regions and runs."""
    return PALETTE[fnv1a_32(name) % len(PALETTE)]


def node_id(region_id: str, name: str) -> str:
    return f"{region_id}_{name}"


def service_node_id(svc: Service) -> str:
    return node_id(svc.region.region_id, svc.name)


def cluster_name(region_id: str) -> str:
    return "cluster_" + region_id.replace("-", "_")


def console_url(svc: Service, page: str) -> str:
    return CONSOLE_URL.format(region=svc.region.region_id, name=svc.name, page=page, project=svc.namespace)


def invocation_edges(
    services: Sequence[Service],
    bindings: Sequence[PermissionBinding],
) -> List[Tuple[Service, Service]]:
    """
    Join caller identity to callee: (S, T) for every service S whose running
    identity holds an invoker binding on T. Sorted and free of duplicates.
    """
    targets_by_identity = bindings_by_identity(bindings)
    edges = set()
    for svc in services:
        if not svc.service_account:
            continue
        for target in targets_by_identity.get(svc.service_account, []):
            edges.add((svc, target))
    return sorted(edges, key=lambda e: (e[0].key, e[1].key))


def dangling_grants(
    services: Sequence[Service],
    bindings: Sequence[PermissionBinding],
) -> Dict[str, List[Service]]:
    """
    Identities with invoker bindings that no discovered service runs as, such as
    user accounts or service accounts of workloads outside Cloud Run.
    """
    running_as = {svc.service_account for svc in services}
    return {
        identity: sorted(targets, key=lambda s: s.key)
        for identity, targets in sorted(bindings_by_identity(bindings).items())
        if identity not in running_as
    }


def _node_label(svc: Service) -> HtmlLabel:
    return HtmlLabel(
        f"{html.escape(svc.name)}<br/><font point-size='9'>{html.escape(svc.service_account)}</font>"
    )


def build_invocation_graph(
    services: Sequence[Service],
    bindings: Sequence[PermissionBinding],
) -> DotGraph:
    """
    Build the graph description: one dashed cluster per region holding a node per
    service, and an edge from each caller service to every service it may invoke.
    """
    graph = DotGraph(name="G")

    by_region: Dict[Region, List[Service]] = {}
    for svc in services:
        by_region.setdefault(svc.region, []).append(svc)

    for region in sorted(by_region, key=lambda r: r.region_id):
        cluster = graph.add_cluster(
            cluster_name(region.region_id),
            attrs={"style": "dashed", "label": region.label},
            node_defaults={"style": "filled", "shape": "box"},
        )
        for svc in sorted(by_region[region], key=lambda s: s.name):
            cluster.add_node(
                service_node_id(svc),
                href=console_url(svc, "revisions"),
                color=color_for(svc.name),
                label=_node_label(svc),
            )

    for caller, target in invocation_edges(services, bindings):
        graph.add_edge(service_node_id(caller), service_node_id(target), href=console_url(target, "permissions"))
    return graph
