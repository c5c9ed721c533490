"""Proof exploration MCP server: statements, selections, and the discovery graph."""

from .proof_state import (
    Statement, ProofState, ProofStateContext, ContextVariable, LabelledStatement,
    StatementCoordinate, StatementAddress, ProofStateLocation,
    are_statement_addresses_equal, walk_statement, statement_at, parse_atomic_statement,
    proof_state_from_json, proof_state_to_json, ProofStateParseError, AddressError,
)
from .selection import ProofStateId, ProofStateSelection, SelectionState
from .discovery import ProofDiscovery, MoveDescription, UnknownNodeError
from .subexpression import SubExpression, SubExpressionCoreWithIndex, find_smallest_at_point
from .typesetter import Typesetter, TypesetterNotReady
from .server import mcp, _sessions, SessionEntry

__all__ = [
    "Statement", "ProofState", "ProofStateContext", "ContextVariable", "LabelledStatement",
    "StatementCoordinate", "StatementAddress", "ProofStateLocation",
    "are_statement_addresses_equal", "walk_statement", "statement_at", "parse_atomic_statement",
    "proof_state_from_json", "proof_state_to_json", "ProofStateParseError", "AddressError",
    "ProofStateId", "ProofStateSelection", "SelectionState",
    "ProofDiscovery", "MoveDescription", "UnknownNodeError",
    "SubExpression", "SubExpressionCoreWithIndex", "find_smallest_at_point",
    "Typesetter", "TypesetterNotReady",
    "mcp", "_sessions", "SessionEntry",
]
