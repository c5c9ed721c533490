"""Active selections over the statements of proof states."""

from dataclasses import dataclass
from typing import Callable

from .proof_state import (
    ProofStateLocation, Statement, StatementAddress, are_statement_addresses_equal,
)
from .subexpression import SubExpressionCoreWithIndex, are_subexpression_selections_equal


@dataclass(frozen=True)
class ProofStateId:
    """A context within a proof discovery graph node."""
    proof_node_id: int
    proof_context_id: int = 0


@dataclass(frozen=True)
class ProofStateSelection:
    proof_state_id: ProofStateId
    location: ProofStateLocation
    address: StatementAddress
    selection: Statement | SubExpressionCoreWithIndex

    @property
    def is_subexpression(self) -> bool:
        return isinstance(self.selection, SubExpressionCoreWithIndex)


def are_proof_state_selections_equal(a: ProofStateSelection, b: ProofStateSelection) -> bool:
    """Positional equality of two selections.

    Sub-expression payloads must also match. Whole-statement payloads are not
    compared: an address denotes the selection at that tree position, so at
    most one whole-statement selection exists per position.
    """
    if not (a.proof_state_id == b.proof_state_id
            and a.location.kind == b.location.kind
            and a.location.label == b.location.label
            and are_statement_addresses_equal(a.address, b.address)):
        return False
    if a.is_subexpression and b.is_subexpression:
        return are_subexpression_selections_equal(a.selection, b.selection)
    return True


Listener = Callable[[list[ProofStateSelection]], None]


class SelectionState:
    """Set of active selections for one interactive session.

    Listeners are called synchronously after every mutation with the new
    list of selections.
    """

    def __init__(self):
        self._selections: list[ProofStateSelection] = []
        self._listeners: list[Listener] = []

    @property
    def selections(self) -> list[ProofStateSelection]:
        return list(self._selections)

    def __len__(self) -> int:
        return len(self._selections)

    def __contains__(self, selection: ProofStateSelection) -> bool:
        return self._find(selection) >= 0

    def _find(self, selection: ProofStateSelection) -> int:
        for i, existing in enumerate(self._selections):
            if are_proof_state_selections_equal(existing, selection):
                return i
        return -1

    def toggle(self, selection: ProofStateSelection) -> bool:
        """Deselect a matching selection, or select this one. Returns True if now selected."""
        idx = self._find(selection)
        if idx >= 0:
            self._selections = self._selections[:idx] + self._selections[idx + 1:]
        else:
            self._selections = self._selections + [selection]
        self._notify()
        return idx < 0

    def clear_all(self):
        self._selections = []
        self._notify()

    def clear_for_proof_state(self, proof_state_id: ProofStateId):
        self._selections = [s for s in self._selections if s.proof_state_id != proof_state_id]
        self._notify()

    def clear_for_proof_node(self, proof_node_id: int):
        """Drop selections in every context of a graph node."""
        self._selections = [s for s in self._selections
                            if s.proof_state_id.proof_node_id != proof_node_id]
        self._notify()

    def at(
        self,
        proof_state_id: ProofStateId,
        location: ProofStateLocation,
        address: StatementAddress,
    ) -> list[ProofStateSelection]:
        """Selections at one tree position, in selection order."""
        return [
            s for s in self._selections
            if s.proof_state_id == proof_state_id
            and s.location == location
            and are_statement_addresses_equal(s.address, address)
        ]

    def is_statement_selected(
        self,
        proof_state_id: ProofStateId,
        location: ProofStateLocation,
        address: StatementAddress,
    ) -> bool:
        return any(not s.is_subexpression for s in self.at(proof_state_id, location, address))

    def selected_subexpressions(
        self,
        proof_state_id: ProofStateId,
        location: ProofStateLocation,
        address: StatementAddress,
    ) -> list[SubExpressionCoreWithIndex]:
        return [s.selection for s in self.at(proof_state_id, location, address) if s.is_subexpression]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self):
        snapshot = self.selections
        for listener in list(self._listeners):
            listener(snapshot)
