"""
Serialize a DiagramGraph as a Mermaid flowchart.
"""

from typing import List, Optional

from .models import DiagramEdge, DiagramGraph, DiagramNode

ROLE_COLORS = {
    "definition": "#e3f2fd",
    "objective": "#fff3e0",
    "constraint": "#fce4ec",
    "theorem": "#e8f5e9",
    "derivation": "#f3e5f5",
    "approximation": "#fff8e1",
    "example": "#f5f5f5",
    "baseline": "#eceff1",
    "unknown": "#ffffff",
}

BUCKET_STYLES = {
    "defined": "fill:#e8f5e9,stroke:#4caf50",
    "undefined": "fill:#ffebee,stroke:#f44336",
    "formula": "fill:#e3f2fd,stroke:#2196f3",
}

SHAPES = {
    "rounded": '{id}("{label}")',
    "circle": '{id}(("{label}"))',
    "diamond": '{id}{{"{label}"}}',
    "stadium": '{id}(["{label}"])',
    "rectangle": '{id}["{label}"]',
}


def escape_label(label: str) -> str:
    """
    Escape a label for use inside double quotes.

    Examples:
        >>> escape_label('a < "b"\\nc')
        "a &lt; 'b'<br/>c"
    """
    return (
        label.replace('"', "'")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("\n", "<br/>")
    )


def node_style(bucket: Optional[str]) -> Optional[str]:
    if bucket in ROLE_COLORS:
        return f"fill:{ROLE_COLORS[bucket]},stroke:#333,stroke-width:1px"
    return BUCKET_STYLES.get(bucket or "")


def to_mermaid(graph: DiagramGraph) -> str:
    """
    Render a diagram graph as Mermaid flowchart source.

    Subgraph members are written inside their subgraph block, remaining
    nodes at top level, then edges, then one style line per styled node.
    Subgraph members that are not nodes of the graph are skipped.
    """
    nodes_by_id = {node.id: node for node in graph.nodes}
    lines: List[str] = [f"flowchart {graph.direction}"]

    placed = set()
    for subgraph in graph.subgraphs:
        lines.append(f'    subgraph {subgraph.id}["{escape_label(subgraph.label)}"]')
        for node_id in subgraph.nodes:
            node = nodes_by_id.get(node_id)
            if node is None or node_id in placed:
                continue
            lines.append(f"        {_format_node(node)}")
            placed.add(node_id)
        lines.append("    end")

    for node in graph.nodes:
        if node.id not in placed:
            lines.append(f"    {_format_node(node)}")

    for edge in graph.edges:
        if edge.source in nodes_by_id and edge.target in nodes_by_id:
            lines.append(f"    {_format_edge(edge)}")

    for node in graph.nodes:
        style = node_style(node.role)
        if style:
            lines.append(f"    style {node.id} {style}")

    return "\n".join(lines)


def wrap_in_markdown(mermaid: str) -> str:
    return "```mermaid\n" + mermaid + "\n```"


def _format_node(node: DiagramNode) -> str:
    template = SHAPES.get(node.shape, SHAPES["rectangle"])
    return template.format(id=node.id, label=escape_label(node.label))


def _format_edge(edge: DiagramEdge) -> str:
    label = escape_label(edge.label) if edge.label else ""
    if edge.style == "dotted":
        arrow = f'-. "{label}" .->' if label else "-.->"
    elif edge.style == "thick":
        arrow = f'== "{label}" ==>' if label else "==>"
    else:
        arrow = f'-- "{label}" -->' if label else "-->"
    return f"{edge.source} {arrow} {edge.target}"
