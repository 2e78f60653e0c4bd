import pytest

from formula_graph.mermaid import escape_label, node_style, to_mermaid, wrap_in_markdown
from formula_graph.models import DiagramEdge, DiagramGraph, DiagramNode, DiagramSubgraph


def test_to_mermaid_layout():
    graph = DiagramGraph(
        direction="LR",
        nodes=(
            DiagramNode("a", "A\nx", role="definition"),
            DiagramNode("b", 'say "hi"', shape="circle"),
        ),
        edges=(DiagramEdge("a", "b", label="x", style="dotted"), DiagramEdge("a", "zz")),
        subgraphs=(DiagramSubgraph("g", "Group", ("a", "missing")),),
    )
    assert to_mermaid(graph).split("\n") == [
        "flowchart LR",
        '    subgraph g["Group"]',
        '        a("A<br/>x")',
        "    end",
        "    b((\"say 'hi'\"))",
        '    a -. "x" .-> b',
        "    style a fill:#e3f2fd,stroke:#333,stroke-width:1px",
    ]


@pytest.mark.parametrize(
    "edge,expected",
    [
        (DiagramEdge("a", "b"), "a --> b"),
        (DiagramEdge("a", "b", label="x, y"), 'a -- "x, y" --> b'),
        (DiagramEdge("a", "b", style="thick"), "a ==> b"),
        (DiagramEdge("a", "b", label="x", style="thick"), 'a == "x" ==> b'),
        (DiagramEdge("a", "b", style="dotted"), "a -.-> b"),
    ],
)
def test_edge_styles(edge, expected):
    graph = DiagramGraph(nodes=(DiagramNode("a", "A"), DiagramNode("b", "B")), edges=(edge,))
    assert to_mermaid(graph).split("\n")[3] == f"    {expected}"


@pytest.mark.parametrize(
    "shape,expected",
    [
        ("rounded", 'n("L")'),
        ("circle", 'n(("L"))'),
        ("diamond", 'n{"L"}'),
        ("stadium", 'n(["L"])'),
        ("rectangle", 'n["L"]'),
        ("hexagon", 'n["L"]'),
    ],
)
def test_node_shapes(shape, expected):
    graph = DiagramGraph(nodes=(DiagramNode("n", "L", shape=shape),))
    assert to_mermaid(graph) == f"flowchart TB\n    {expected}"


def test_escape_label():
    assert escape_label('a < "b" > c\nd') == "a &lt; 'b' &gt; c<br/>d"


def test_node_style_buckets():
    assert node_style("defined") == "fill:#e8f5e9,stroke:#4caf50"
    assert node_style("objective").startswith("fill:#fff3e0")
    assert node_style(None) is None
    assert node_style("other") is None


def test_wrap_in_markdown():
    assert wrap_in_markdown("flowchart TB") == "```mermaid\nflowchart TB\n```"
