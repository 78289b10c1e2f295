"""
Renders a Quill AST as an interactive node graph (a standalone HTML page).
"""
import html
import json
import re
from typing import List, Dict, Any, Optional, Tuple

import pystache

from quill.quill_datatypes import (
    Expression, NumericLiteral, StringLiteral, Identifier, UnaryOp, BinaryOp,
    TernaryOp, Loop, Conditional, Declaration, FunctionDeclaration,
    FunctionCall, ListExpression,
)
from quill.quill_printer import format_number


SHAPES = {
    NumericLiteral: "ellipse",
    StringLiteral: "ellipse",
    Identifier: "box",
    UnaryOp: "diamond",
    BinaryOp: "triangle",
    TernaryOp: "star",
    Conditional: "hexagon",
    Loop: "hexagon",
    FunctionDeclaration: "database",
    FunctionCall: "dot",
}

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{title}}</title>
  <script src="https://unpkg.com/vis-network/standalone/umd/vis-network.min.js"></script>
  <style>
    html, body { margin: 0; height: 100%; font-family: sans-serif; }
    #graph { width: 100%; height: 100%; }
  </style>
</head>
<body>
  <div id="graph"></div>
  <script>
    const nodes = {{nodes}};
    const edges = {{edges}};
    new vis.Network(
      document.getElementById("graph"),
      { nodes: new vis.DataSet(nodes), edges: new vis.DataSet(edges) },
      { layout: { hierarchical: { direction: "UD", sortMethod: "directed" } } }
    );
  </script>
</body>
</html>
"""


def _kind_label(node: Expression) -> str:
    # "FunctionCall" -> "function call"
    return re.sub(r"(?<!^)([A-Z])", r" \1", type(node).__name__).lower()


def _detail(node: Expression) -> str:
    match node:
        case NumericLiteral():
            return format_number(node.value)
        case StringLiteral():
            return json.dumps(node.content)
        case Identifier():
            return node.name
        case UnaryOp() | BinaryOp():
            return node.operator
        case TernaryOp():
            return "?"
        case Loop():
            return node.keyword
        case Conditional():
            return "if"
        case Declaration():
            return f"{node.qualifier} {node.name}"
        case FunctionDeclaration():
            return "(" + ", ".join(node.params) + ")"
        case FunctionCall():
            return f"({len(node.args)})"
        case ListExpression():
            return f"[{len(node.elements)}]"
        case _:
            return ""


def flatten_ast(ast: Expression) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Lists the AST's nodes (pre-order, ids from 0) and parent-to-child edges."""
    nodes: List[Dict[str, Any]] = []
    edges: List[Dict[str, Any]] = []
    # Explicit stack so deep trees do not hit the recursion limit
    stack: List[Tuple[Expression, Optional[int]]] = [(ast, None)]
    while stack:
        node, parent_id = stack.pop()
        node_id = len(nodes)
        label = f"{_kind_label(node)} {_detail(node)}".strip()
        nodes.append({'id': node_id, 'label': label, 'shape': SHAPES.get(type(node), "box")})
        if parent_id is not None:
            edges.append({'from': parent_id, 'to': node_id})
        for child in reversed(node.children()):
            stack.append((child, node_id))
    return nodes, edges


def _script_json(data) -> str:
    # Keep the payload from closing the surrounding <script> element
    return json.dumps(data).replace("</", "<\\/")


def render_html(ast: Expression, title: str = "Quill AST") -> str:
    nodes, edges = flatten_ast(ast)
    # Only the title is text; the graph payload is already script-safe JSON
    renderer = pystache.Renderer(escape=lambda u: u)
    return renderer.render(PAGE_TEMPLATE, {
        'title': html.escape(title),
        'nodes': _script_json(nodes),
        'edges': _script_json(edges),
    })
