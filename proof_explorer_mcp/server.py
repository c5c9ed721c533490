#!/usr/bin/env python3
"""Proof Explorer MCP Server - interactive proof-state exploration tools.

Sessions are in-memory only. Each holds one proof discovery graph and the
selections made over its proof states. They survive within a single server
lifetime but not across restarts.
"""

import json
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from fastmcp import FastMCP

from .discovery import MOVE_KINDS, MoveDescription, ProofDiscovery, UnknownNodeError
from .proof_state import (
    ProofStateLocation, ProofStateParseError, address_from_json,
    context_statement, format_address, formula_sources, proof_state_from_json, statement_at,
)
from .rendering import render_proof_state, render_statement
from .selection import ProofStateId, ProofStateSelection, SelectionState
from .subexpression import (
    CompilationError, Rect, find_smallest_at_point, hit_test, selection_payload,
)
from .typesetter import Typesetter, TypesetterNotReady

LOCATION_KINDS = ("variable", "variable_body", "hypothesis", "goal")


@dataclass
class SessionEntry:
    """Registry entry for a proof exploration session."""
    discovery: ProofDiscovery = field(default_factory=ProofDiscovery)
    selections: SelectionState = field(default_factory=SelectionState)
    started: datetime = field(default_factory=datetime.now)
    last_used: float = field(default_factory=time.time)


mcp = FastMCP("proof-explorer", instructions="""Proof exploration workflow:

1. proof_init: Record the problem statement and its initial proof state (node 0)
2. proof_transition: Record each editing move (strengthening/weakening/equivalence/other)
3. proof_show / select_toggle / select_formula: Inspect a node and select parts of it
4. proof_focus: Jump back to an earlier node to explore another branch
5. proof_finish: Mark the problem solved

Proof states are JSON lists of contexts: {"variables": [...], "hypotheses": [...], "goals": [...]}.
""")
_sessions: dict[str, SessionEntry] = {}
_typesetter = Typesetter()


def _get_session(name: str, create: bool = False) -> Optional[SessionEntry]:
    """Get session from registry (optionally creating it). Sessions end only via proof_drop()."""
    entry = _sessions.get(name)
    if entry is None and create:
        entry = _sessions[name] = SessionEntry()
    if entry:
        entry.last_used = time.time()
    return entry


def _format_duration(secs: int) -> str:
    if secs < 60:
        return f"{secs}s"
    elif secs < 3600:
        return f"{secs // 60}m"
    else:
        return f"{secs / 3600:.1f}h"


def _session_age(entry: SessionEntry) -> str:
    return _format_duration(int((datetime.now() - entry.started).total_seconds()))


def _session_idle(entry: SessionEntry) -> str:
    return _format_duration(int(time.time() - entry.last_used))


def _missing(session: str) -> str:
    return f"ERROR: Session '{session}' not found. Use proof_init() to start one."


def _error(e: Exception) -> str:
    """Format a caught error; plain KeyErrors carry their message in args[0]."""
    if type(e) is KeyError and e.args:
        return f"ERROR: {e.args[0]}"
    return f"ERROR: {e}"


def _decode_proof_state(proof_state: list | str):
    """Accept the proof state as decoded JSON or as JSON text."""
    if isinstance(proof_state, str):
        try:
            proof_state = json.loads(proof_state)
        except json.JSONDecodeError as e:
            raise ProofStateParseError(f"Invalid JSON: {e}") from e
    return proof_state_from_json(proof_state)


def _format_node_line(discovery: ProofDiscovery, node_id: int) -> str:
    node = discovery.node(node_id)
    goals = [g.label for ctx in node.proof_state for g in ctx.goals]
    marker = " <--" if node_id == discovery.current_node_id else ""
    return (f"  [{node_id}] {len(node.proof_state)} context(s), "
            f"goals: {', '.join(goals) or '(none)'}{marker}")


# =============================================================================
# Proof discovery tools
# =============================================================================


@mcp.tool()
async def proof_init(statement: str, proof_state: list | str, session: str = "default") -> str:
    """Start (or restart) exploring a problem.

    Discards any existing graph and selections for this session.

    Args:
        statement: Natural-language problem statement
        proof_state: Initial proof state (list of contexts, or its JSON text)
        session: Session name (default: "default")

    Returns: The initial proof state, rendered
    """
    try:
        state = _decode_proof_state(proof_state)
    except ProofStateParseError as e:
        return f"ERROR: Invalid proof state: {e}"

    entry = _get_session(session, create=True)
    entry.discovery.initialize(statement, state)
    entry.selections.clear_all()
    return f"Session '{session}' initialized.\n\n{render_proof_state(state, 0)}"


@mcp.tool()
async def proof_transition(kind: str, description: str, proof_state: list | str,
                           session: str = "default") -> str:
    """Record a move from the current node to a new proof state, and focus it.

    Args:
        kind: "strengthening" (new implies current), "weakening" (current implies new),
              "equivalence", or "other" (no logical direction asserted)
        description: What the move did
        proof_state: The resulting proof state
        session: Session name (default: "default")

    Returns: New node id and its rendered proof state
    """
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    if kind not in MOVE_KINDS:
        return f"ERROR: kind must be one of {', '.join(MOVE_KINDS)} (got '{kind}')"
    try:
        state = _decode_proof_state(proof_state)
        node_id = entry.discovery.transition(MoveDescription(kind, description), state)
    except (ProofStateParseError, UnknownNodeError) as e:
        return f"ERROR: {e}"
    return f"Node {node_id} ({kind}: {description})\n\n{render_proof_state(state, node_id)}"


@mcp.tool()
async def proof_repair(node_id: int, proof_state: list | str, session: str = "default") -> str:
    """Replace the proof state stored at a node (focus unchanged).

    Selections on that node are dropped since their addresses may no longer apply.
    """
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    try:
        state = _decode_proof_state(proof_state)
        entry.discovery.repair(node_id, state)
    except (ProofStateParseError, UnknownNodeError) as e:
        return f"ERROR: {e}"
    entry.selections.clear_for_proof_node(node_id)
    return f"Node {node_id} repaired.\n\n{render_proof_state(state, node_id, entry.selections)}"


@mcp.tool()
async def proof_focus(node_id: int, session: str = "default") -> str:
    """Make an existing node current, so the next transition branches from it."""
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    try:
        entry.discovery.focus(node_id)
    except UnknownNodeError as e:
        return f"ERROR: {e}"
    state = entry.discovery.current_node.proof_state
    return f"Focused node {node_id}.\n\n{render_proof_state(state, node_id, entry.selections)}"


@mcp.tool()
async def proof_finish(session: str = "default") -> str:
    """Mark the problem as solved."""
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    entry.discovery.finish()
    return f"Session '{session}' solved: {entry.discovery.statement}"


@mcp.tool()
async def proof_graph(session: str = "default") -> str:
    """Show the discovery graph: nodes, moves, and which nodes imply the current one."""
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    d = entry.discovery
    if d.order == 0:
        return f"Session '{session}' has no proof states yet. Use proof_init()."

    lines = [
        f"Problem: {d.statement}",
        f"Status: {'SOLVED' if d.is_solved else 'open'}",
        f"Current node: {d.current_node_id}",
        "",
        f"Nodes ({d.order}):",
    ]
    lines.extend(_format_node_line(d, node_id) for node_id in range(d.order))

    lines.append("")
    lines.append(f"Moves ({len(d.edges)}):")
    arrows = {True: "->", False: "<->"}
    for edge in d.edges:
        arrow = "~>" if edge.move.kind == "other" else arrows[edge.directed]
        lines.append(f"  {edge.source} {arrow} {edge.target}  {edge.move.kind}: {edge.move.description}")

    implying = sorted(d.implying_nodes(d.current_node_id))
    lines.append("")
    lines.append(f"Nodes implying current: {', '.join(map(str, implying)) or 'None'}")
    return "\n".join(lines)


@mcp.tool()
async def proof_show(node_id: int = None, session: str = "default") -> str:
    """Render a node's proof state (default: current node) with selections marked [[...]]."""
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    d = entry.discovery
    if node_id is None:
        node_id = d.current_node_id
    try:
        state = d.node(node_id).proof_state
    except UnknownNodeError as e:
        return f"ERROR: {e}"
    return f"=== Node {node_id} ===\n\n{render_proof_state(state, node_id, entry.selections)}"


@mcp.tool()
async def proof_sessions() -> str:
    """List all exploration sessions with age, idle time, node count, and status."""
    if not _sessions:
        return "No active sessions."

    lines = ["SESSION      AGE     IDLE    NODES  CURRENT  SELECTED  STATUS   PROBLEM"]
    lines.append("-" * 90)
    for name, entry in _sessions.items():
        d = entry.discovery
        status = "solved" if d.is_solved else "open"
        problem = d.statement if len(d.statement) <= 30 else d.statement[:27] + "..."
        lines.append(f"{name:<12} {_session_age(entry):<7} {_session_idle(entry):<7} "
                     f"{d.order:<6} {d.current_node_id:<8} "
                     f"{len(entry.selections):<9} {status:<8} {problem}")
    return "\n".join(lines)


@mcp.tool()
async def proof_drop(session: str = "default") -> str:
    """Discard a session with its graph and selections."""
    if _sessions.pop(session, None):
        return f"Session '{session}' dropped."
    return f"Session '{session}' not found."


# =============================================================================
# Selection tools
# =============================================================================


def _resolve_target(entry: SessionEntry, node_id: int, context: int, location_kind: str,
                    label: str, address: list | None):
    """Resolve (state id, location, address, statement) for a selection request.

    Raises UnknownNodeError, ValueError, KeyError (unknown label), or AddressError.
    """
    if location_kind not in LOCATION_KINDS:
        raise ValueError(f"location_kind must be one of {', '.join(LOCATION_KINDS)} (got '{location_kind}')")
    proof_state = entry.discovery.node(node_id).proof_state
    if not 0 <= context < len(proof_state):
        raise ValueError(f"Node {node_id} has no context {context} ({len(proof_state)} contexts)")
    location = ProofStateLocation(location_kind, label)
    root = context_statement(proof_state[context], location)
    addr = address_from_json(address or [])
    return ProofStateId(node_id, context), location, addr, statement_at(root, addr)


@mcp.tool()
async def select_toggle(node_id: int, location_kind: str, label: str, address: list = None,
                        context: int = 0, session: str = "default") -> str:
    """Toggle selection of a whole statement node.

    Args:
        node_id: Graph node holding the proof state
        location_kind: "variable", "variable_body", "hypothesis", or "goal"
        label: Variable name or hypothesis/goal label
        address: Path from the root, e.g. ["implication_antecedent", {"kind": "conjunction", "idx": 1}]
        context: Context index within the proof state (default 0)
        session: Session name (default: "default")

    Returns: Whether the node is now selected
    """
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    try:
        state_id, location, addr, statement = _resolve_target(
            entry, node_id, context, location_kind, label, address)
    except (LookupError, ValueError) as e:
        return _error(e)

    selected = entry.selections.toggle(ProofStateSelection(state_id, location, addr, statement))
    verb = "Selected" if selected else "Deselected"
    return f"{verb} {location_kind} '{label}' at {format_address(addr)}: {render_statement(statement)}"


@mcp.tool()
async def select_formula(node_id: int, location_kind: str, label: str, x: float, y: float,
                         formula_index: int = 0, address: list = None, context: int = 0,
                         screen: list = None, session: str = "default") -> str:
    """Toggle selection of the smallest formula sub-expression under a point.

    Args:
        node_id: Graph node holding the proof state
        location_kind: "variable", "variable_body", "hypothesis", or "goal"
        label: Variable name or hypothesis/goal label
        x, y: Point in the formula's own coordinates, or in screen coordinates if `screen` is given
        formula_index: Which $...$ formula within the atomic statement (0-based)
        address: Path to the atomic statement from the root (default: root)
        context: Context index within the proof state (default 0)
        screen: Optional [x, y, width, height] of the rendered formula on screen
        session: Session name (default: "default")

    Returns: The sub-expression toggled, or why nothing was hit
    """
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    try:
        state_id, location, addr, statement = _resolve_target(
            entry, node_id, context, location_kind, label, address)
    except (LookupError, ValueError) as e:
        return _error(e)
    if not isinstance(statement, str):
        return f"ERROR: {format_address(addr)} is not an atomic statement"

    formulas = formula_sources(statement)
    if not 0 <= formula_index < len(formulas):
        return f"ERROR: Statement has {len(formulas)} formula(s); no formula {formula_index}"

    if not _typesetter.is_ready:
        await _typesetter.start()
    try:
        compiled = _typesetter.compile(formulas[formula_index])
    except TypesetterNotReady:
        return f"ERROR: Typesetter not ready: {_typesetter.error}"
    except CompilationError as e:
        return f"ERROR: Math compilation failed for ${e.source}$: {e.message}"

    if screen is not None:
        if len(screen) != 4 or compiled.viewbox is None:
            return "ERROR: screen must be [x, y, width, height] and the artwork must declare a viewBox"
        try:
            rect = Rect(*map(float, screen))
            idx = hit_test(compiled.subexpressions, compiled.viewbox, rect, x, y)
        except (TypeError, ValueError) as e:
            return f"ERROR: Invalid screen rectangle {screen}: {e}"
    else:
        idx = find_smallest_at_point(compiled.subexpressions, x, y)
    if idx is None:
        return f"No sub-expression at ({x}, {y}) in ${formulas[formula_index]}$"

    sub = compiled.subexpressions[idx]
    payload = selection_payload(sub, formula_index)
    selected = entry.selections.toggle(ProofStateSelection(state_id, location, addr, payload))
    verb = "Selected" if selected else "Deselected"
    return (f"{verb} ${sub.text}$ [{sub.source_start}:{sub.source_end}] "
            f"in formula {formula_index} of {location_kind} '{label}' at {format_address(addr)}")


@mcp.tool()
async def select_clear(node_id: int = None, context: int = None, session: str = "default") -> str:
    """Clear selections: all of them, one node's, or one context's (node_id + context)."""
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    before = len(entry.selections)
    if node_id is None:
        entry.selections.clear_all()
    elif context is None:
        entry.selections.clear_for_proof_node(node_id)
    else:
        entry.selections.clear_for_proof_state(ProofStateId(node_id, context))
    return f"Cleared {before - len(entry.selections)} selection(s)."


@mcp.tool()
async def select_list(session: str = "default") -> str:
    """List active selections in selection order."""
    entry = _get_session(session)
    if not entry:
        return _missing(session)
    if not len(entry.selections):
        return "No selections."
    lines = []
    for sel in entry.selections.selections:
        where = (f"node {sel.proof_state_id.proof_node_id} ctx {sel.proof_state_id.proof_context_id} "
                 f"{sel.location.kind} '{sel.location.label}' {format_address(sel.address)}")
        if sel.is_subexpression:
            p = sel.selection
            lines.append(f"  {where}: formula {p.index} ${p.text}$ [{p.source_start}:{p.source_end}]")
        else:
            lines.append(f"  {where}: {render_statement(sel.selection)}")
    return f"Selections ({len(lines)}):\n" + "\n".join(lines)


# =============================================================================
# Typesetting
# =============================================================================


@mcp.tool()
async def formula_compile(source: str) -> str:
    """Typeset a formula and list its sub-expressions with bounding boxes.

    Loads the typesetter on first use.
    """
    if not _typesetter.is_ready:
        result = await _typesetter.start()
        if result.startswith("ERROR"):
            return result
    try:
        compiled = _typesetter.compile(source)
    except CompilationError as e:
        return f"ERROR: {e.message}"

    lines = [f"Formula: ${source}$"]
    if compiled.viewbox:
        vb = compiled.viewbox
        lines.append(f"viewBox: {vb.x} {vb.y} {vb.width} {vb.height}")
    lines.append(f"Sub-expressions ({len(compiled.subexpressions)}):")
    for i, sub in enumerate(compiled.subexpressions):
        lines.append(f"  [{i}] ${sub.text}$ [{sub.source_start}:{sub.source_end}] "
                     f"at ({sub.x}, {sub.y}) {sub.width}x{sub.height}")
    return "\n".join(lines)


def main():
    """CLI entry point for the Proof Explorer MCP server."""
    import argparse
    import logging

    parser = argparse.ArgumentParser(description="Proof Explorer MCP Server")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the MCP server (default)")
    serve_parser.add_argument(
        "--transport",
        choices=["stdio", "http", "sse"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for HTTP/SSE (default: 8000)")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host for HTTP/SSE (default: 127.0.0.1)")
    serve_parser.add_argument("--typesetter", help="Typesetter backend module (default: $PROOF_EXPLORER_TYPESETTER)")
    serve_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    # Also allow serve options at top level
    parser.add_argument("--transport", choices=["stdio", "http", "sse"], default="stdio", help=argparse.SUPPRESS)
    parser.add_argument("--port", type=int, default=8000, help=argparse.SUPPRESS)
    parser.add_argument("--host", default="127.0.0.1", help=argparse.SUPPRESS)
    parser.add_argument("--typesetter", help=argparse.SUPPRESS)
    parser.add_argument("-v", "--verbose", action="store_true", help=argparse.SUPPRESS)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        logging.getLogger("mcp").setLevel(logging.DEBUG)

    if args.typesetter:
        _typesetter.module = args.typesetter

    if args.transport == "stdio":
        mcp.run(show_banner=False)
    else:
        print(f"Proof Explorer MCP server starting on {args.host}:{args.port} ({args.transport})", file=sys.stderr)
        mcp.run(transport=args.transport, host=args.host, port=args.port, show_banner=False)


if __name__ == "__main__":
    main()
