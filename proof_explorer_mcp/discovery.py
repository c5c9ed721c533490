"""Proof discovery graph: proof state snapshots linked by logical moves.

Nodes live in an append-only arena indexed by dense integer ids; edges are
kept as a separate list. Nothing is ever deleted, so ids are never reused.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

import networkx as nx

from .proof_state import ProofState

logger = logging.getLogger(__name__)

MoveKind = Literal["strengthening", "weakening", "equivalence", "other"]
MOVE_KINDS: tuple[str, ...] = ("strengthening", "weakening", "equivalence", "other")


@dataclass(frozen=True)
class MoveDescription:
    kind: MoveKind
    description: str

    def __post_init__(self):
        if self.kind not in MOVE_KINDS:
            raise ValueError(f"Unknown move kind: {self.kind!r} (expected one of {', '.join(MOVE_KINDS)})")


@dataclass
class ProofNode:
    proof_state: ProofState


@dataclass(frozen=True)
class ProofEdge:
    """A move between two nodes.

    For directed edges, the source state implies the target state. `other`
    moves are stored new -> current but assert no logical direction.
    """
    source: int
    target: int
    directed: bool
    move: MoveDescription


class UnknownNodeError(KeyError):
    """An action referenced a node id that is not in the graph."""

    def __init__(self, node_id: int):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"Node with ID {self.node_id} does not exist."


@dataclass
class ProofDiscovery:
    """Graph of proof states explored while solving one problem."""
    statement: str = ""
    current_node_id: int = -1
    is_solved: bool = False
    _nodes: list[ProofNode] = field(default_factory=list, repr=False)
    _edges: list[ProofEdge] = field(default_factory=list, repr=False)
    _listeners: list[Callable[["ProofDiscovery"], None]] = field(
        default_factory=list, repr=False, compare=False)

    # -- reads ---------------------------------------------------------------

    @property
    def order(self) -> int:
        """Number of nodes."""
        return len(self._nodes)

    @property
    def edges(self) -> list[ProofEdge]:
        return list(self._edges)

    @property
    def nodes(self) -> dict[int, ProofNode]:
        return dict(enumerate(self._nodes))

    def has_node(self, node_id: int) -> bool:
        return 0 <= node_id < len(self._nodes)

    def node(self, node_id: int) -> ProofNode:
        if not self.has_node(node_id):
            raise UnknownNodeError(node_id)
        return self._nodes[node_id]

    @property
    def current_node(self) -> ProofNode:
        return self.node(self.current_node_id)

    def neighbours(self, node_id: int) -> list[tuple[int, ProofEdge]]:
        """(other node, edge) for every edge touching node_id, in insertion order."""
        self.node(node_id)
        result = []
        for edge in self._edges:
            if edge.source == node_id:
                result.append((edge.target, edge))
            elif edge.target == node_id:
                result.append((edge.source, edge))
        return result

    # -- transitions -----------------------------------------------------------

    def initialize(self, statement: str, proof_state: ProofState):
        """Discard any existing graph and start over from a single node 0."""
        self._nodes = [ProofNode(proof_state)]
        self._edges = []
        self.statement = statement
        self.current_node_id = 0
        self.is_solved = False
        logger.debug("Initialized proof discovery for %r", statement)
        self._notify()

    def repair(self, node_id: int, new_proof_state: ProofState):
        """Replace a node's proof state in place. Focus is unchanged."""
        self.node(node_id).proof_state = new_proof_state
        self._notify()

    def focus(self, node_id: int):
        self.node(node_id)
        self.current_node_id = node_id
        self._notify()

    def transition(self, move: MoveDescription, new_proof_state: ProofState) -> int:
        """Add a node reached from the current one by `move` and focus it.

        Edge orientation by move kind:
            strengthening: new -> current (the new state implies the old)
            weakening:     current -> new
            equivalence:   undirected
            other:         new -> current, tagged "other"

        Returns the new node id.
        """
        current = self.current_node_id
        self.node(current)
        new_id = len(self._nodes)
        if move.kind == "weakening":
            edge = ProofEdge(current, new_id, True, move)
        elif move.kind == "equivalence":
            edge = ProofEdge(new_id, current, False, move)
        else:
            edge = ProofEdge(new_id, current, True, move)
        self._nodes.append(ProofNode(new_proof_state))
        self._edges.append(edge)
        self.current_node_id = new_id
        logger.debug("Transition %d -> %d (%s: %s)", current, new_id, move.kind, move.description)
        self._notify()
        return new_id

    def finish(self):
        self.is_solved = True
        self._notify()

    def dispatch(self, action: dict[str, Any]):
        """Apply an action given as {"action": name, ...arguments}.

        Raises:
            UnknownNodeError: If the action references a missing node.
            ValueError: If the action name is not recognised.
        """
        match action["action"]:
            case "initialize":
                self.initialize(action["statement"], action["proof_state"])
            case "repair":
                self.repair(action["node_id"], action["new_proof_state"])
            case "focus":
                self.focus(action["node_id"])
            case "transition":
                self.transition(action["move"], action["new_proof_state"])
            case "finish":
                self.finish()
            case other:
                raise ValueError(f"Unknown proof discovery action: {other!r}")

    def subscribe(self, listener: Callable[["ProofDiscovery"], None]) -> Callable[[], None]:
        """Register a listener called with this graph after each successful mutation.

        Returns a function that unregisters it.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)

    # -- graph queries -----------------------------------------------------------

    def to_networkx(self) -> nx.MultiDiGraph:
        """Export as a MultiDiGraph.

        Undirected edges are added in both directions with directed=False.
        Nodes carry `proof_state`; edges carry `kind`, `description`, `directed`.
        """
        g = nx.MultiDiGraph(statement=self.statement, current=self.current_node_id,
                            solved=self.is_solved)
        for node_id, node in enumerate(self._nodes):
            g.add_node(node_id, proof_state=node.proof_state)
        for edge in self._edges:
            attrs = {"kind": edge.move.kind, "description": edge.move.description,
                     "directed": edge.directed}
            g.add_edge(edge.source, edge.target, **attrs)
            if not edge.directed:
                g.add_edge(edge.target, edge.source, **attrs)
        return g

    def implication_graph(self) -> nx.DiGraph:
        """Edges u -> v whenever state u is known to imply state v. `other` moves are skipped."""
        g = nx.DiGraph()
        g.add_nodes_from(range(len(self._nodes)))
        for edge in self._edges:
            if edge.move.kind == "other":
                continue
            g.add_edge(edge.source, edge.target)
            if not edge.directed:
                g.add_edge(edge.target, edge.source)
        return g

    def implying_nodes(self, node_id: int) -> set[int]:
        """Ids of nodes whose state implies node_id's state through recorded moves."""
        self.node(node_id)
        return nx.ancestors(self.implication_graph(), node_id)

    def implied_nodes(self, node_id: int) -> set[int]:
        self.node(node_id)
        return nx.descendants(self.implication_graph(), node_id)
