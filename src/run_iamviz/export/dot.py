from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

Attrs = Dict[str, str]

_BARE_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class HtmlLabel(str):
    """A Graphviz HTML-like label, emitted as <...> instead of a quoted string."""


def quote(value: str) -> str:
    if isinstance(value, HtmlLabel):
        return f"<{value}>"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _ident(value: str) -> str:
    return value if _BARE_ID_RE.match(value) else quote(value)


def _attr_list(attrs: Mapping[str, str]) -> str:
    return ",".join(f"{_ident(k)}={quote(v)}" for k, v in attrs.items())


@dataclass
class DotNode:
    node_id: str
    attrs: Attrs = field(default_factory=dict)

    def render(self, indent: str) -> str:
        if not self.attrs:
            return f"{indent}{quote(self.node_id)};"
        return f"{indent}{quote(self.node_id)} [{_attr_list(self.attrs)}];"


@dataclass
class DotEdge:
    source: str
    target: str
    attrs: Attrs = field(default_factory=dict)

    def render(self, indent: str) -> str:
        line = f"{indent}{quote(self.source)} -> {quote(self.target)}"
        if self.attrs:
            line = f"{line} [{_attr_list(self.attrs)}]"
        return f"{line};"


@dataclass
class DotCluster:
    """
    A subgraph. Graphviz only draws a box around it when the name starts
    with "cluster".
    """

    name: str
    attrs: Attrs = field(default_factory=dict)
    node_defaults: Attrs = field(default_factory=dict)
    nodes: List[DotNode] = field(default_factory=list)

    def add_node(self, node_id: str, **attrs: str) -> DotNode:
        node = DotNode(node_id, dict(attrs))
        self.nodes.append(node)
        return node

    def render(self, indent: str) -> List[str]:
        inner = indent + "  "
        lines = [f"{indent}subgraph {_ident(self.name)} {{"]
        lines.extend(f"{inner}{_ident(k)}={quote(v)};" for k, v in self.attrs.items())
        if self.node_defaults:
            lines.append(f"{inner}node [{_attr_list(self.node_defaults)}];")
        lines.extend(n.render(inner) for n in self.nodes)
        lines.append(f"{indent}}}")
        return lines


@dataclass
class DotGraph:
    name: str = "G"
    attrs: Attrs = field(default_factory=dict)
    clusters: List[DotCluster] = field(default_factory=list)
    edges: List[DotEdge] = field(default_factory=list)

    def add_cluster(self, name: str, attrs: Optional[Mapping[str, str]] = None, node_defaults: Optional[Mapping[str, str]] = None) -> DotCluster:
        cluster = DotCluster(name, dict(attrs or {}), dict(node_defaults or {}))
        self.clusters.append(cluster)
        return cluster

    def add_edge(self, source: str, target: str, **attrs: str) -> DotEdge:
        edge = DotEdge(source, target, dict(attrs))
        self.edges.append(edge)
        return edge

    def to_dot(self) -> str:
        lines = [f"digraph {_ident(self.name)} {{"]
        lines.extend(f"  {_ident(k)}={quote(v)};" for k, v in self.attrs.items())
        for cluster in self.clusters:
            lines.extend(cluster.render("  "))
        lines.extend(e.render("  ") for e in self.edges)
        lines.append("}")
        return "\n".join(lines) + "\n"
