from __future__ import annotations

from run_iamviz.export.dot import DotGraph, HtmlLabel, quote


def test_quote_escapes_quotes_and_backslashes() -> None:
    assert quote('say "hi"') == '"say \\"hi\\""'
    assert quote("a\\b") == '"a\\\\b"'
    assert quote("two\nlines") == '"two\\nlines"'


def test_html_labels_are_not_quoted() -> None:
    assert quote(HtmlLabel("a<br/>b")) == "<a<br/>b>"


def test_graph_serialization_layout() -> None:
    graph = DotGraph(name="G", attrs={"rankdir": "LR"})
    cluster = graph.add_cluster("cluster_r1", attrs={"label": "r1"}, node_defaults={"shape": "box"})
    cluster.add_node("r1_a", color="gold2")
    cluster.add_node("r1_b")
    graph.add_edge("r1_a", "r1_b", href="http://x")

    assert graph.to_dot() == (
        "digraph G {\n"
        '  rankdir="LR";\n'
        "  subgraph cluster_r1 {\n"
        '    label="r1";\n'
        '    node [shape="box"];\n'
        '    "r1_a" [color="gold2"];\n'
        '    "r1_b";\n'
        "  }\n"
        '  "r1_a" -> "r1_b" [href="http://x"];\n'
        "}\n"
    )


def test_empty_graph_has_no_body() -> None:
    assert DotGraph().to_dot() == "digraph G {\n}\n"
