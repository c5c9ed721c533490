"""Text rendering of proof states, with selections marked in place."""

from typing import Callable, Iterator, assert_never

from .proof_state import (
    ROOT, Conjunction, Disjunction, Equivalence, Existential, Highlight, Implication,
    Negation, ProofState, ProofStateContext, ProofStateLocation, Statement,
    StatementAddress, StatementCoordinate, Universal, format_address, formula_sources,
    iter_locations, walk_statement,
)
from .selection import ProofStateId, SelectionState

CONJUNCTION = "∧"
DISJUNCTION = "∨"
NEGATION = "¬"
IMPLICATION = "⇒"
EQUIVALENCE = "⇔"
UNIVERSAL = "∀"
EXISTENTIAL = "∃"
TRUTH = "⊤"
FALSITY = "⊥"

KIND_INDICATORS = {"free": "", "meta": "?", "let": "≔"}

SELECTED_OPEN, SELECTED_CLOSE = "[[", "]]"
HIGHLIGHT_OPEN, HIGHLIGHT_CLOSE = "⟪", "⟫"

Marker = Callable[[StatementAddress, Statement], bool]


def _needs_parens(statement: Statement) -> bool:
    return isinstance(statement, (Conjunction, Disjunction, Implication, Equivalence,
                                  Universal, Existential))


def render_statement(
    statement: Statement,
    is_selected: Marker | None = None,
    address: StatementAddress = ROOT,
) -> str:
    """Render a statement with logical symbols.

    Nodes for which `is_selected(address, node)` holds are wrapped in [[...]].
    """
    def child(sub: Statement, coord: StatementCoordinate, parens: bool = True) -> str:
        text = render_statement(sub, is_selected, address + (coord,))
        return f"({text})" if parens and _needs_parens(sub) else text

    match statement:
        case str():
            text = statement
        case Conjunction(statements=children) | Disjunction(statements=children):
            if isinstance(statement, Conjunction):
                kind, symbol, empty = "conjunction", CONJUNCTION, TRUTH
            else:
                kind, symbol, empty = "disjunction", DISJUNCTION, FALSITY
            parts = [child(s, StatementCoordinate(kind, i)) for i, s in enumerate(children)]
            text = f" {symbol} ".join(parts) if parts else empty
        case Negation(statement=sub):
            text = NEGATION + child(sub, StatementCoordinate("negation"))
        case Implication(antecedent=a, consequent=c):
            text = (f"{child(a, StatementCoordinate('implication_antecedent'))} {IMPLICATION} "
                    f"{child(c, StatementCoordinate('implication_consequent'))}")
        case Equivalence(left=left, right=right):
            text = (f"{child(left, StatementCoordinate('equivalence_left'))} {EQUIVALENCE} "
                    f"{child(right, StatementCoordinate('equivalence_right'))}")
        case Universal(variable=var, statement=body) | Existential(variable=var, statement=body):
            prefix, symbol = (("universal", UNIVERSAL) if isinstance(statement, Universal)
                              else ("existential", EXISTENTIAL))
            name = child(var.name, StatementCoordinate(f"{prefix}_var"))
            desc = child(var.description, StatementCoordinate(f"{prefix}_var_type"))
            body_text = child(body, StatementCoordinate(f"{prefix}_body"), parens=False)
            text = f"{symbol} {name} : {desc}. {body_text}"
        case Highlight(statement=sub):
            text = HIGHLIGHT_OPEN + child(sub, StatementCoordinate("highlight"), parens=False) + HIGHLIGHT_CLOSE
        case _:
            assert_never(statement)

    if is_selected is not None and is_selected(address, statement):
        return f"{SELECTED_OPEN}{text}{SELECTED_CLOSE}"
    return text


def walk_context(
    context: ProofStateContext, state_id: ProofStateId
) -> Iterator[tuple[ProofStateId, ProofStateLocation, StatementAddress, Statement]]:
    """Every addressable statement node of one context, in display order."""
    for location, root in iter_locations(context):
        for address, node in walk_statement(root):
            yield state_id, location, address, node


def walk_proof_state(
    proof_state: ProofState, proof_node_id: int
) -> Iterator[tuple[ProofStateId, ProofStateLocation, StatementAddress, Statement]]:
    """Every addressable statement node of a proof state.

    Yields (proof state id, location, address, node) in display order:
    contexts in order, then variables, hypotheses, goals, each tree pre-order.
    """
    for ctx_idx, context in enumerate(proof_state):
        yield from walk_context(context, ProofStateId(proof_node_id, ctx_idx))


def _marker(selections: SelectionState | None, state_id: ProofStateId,
            location: ProofStateLocation) -> Marker | None:
    if selections is None:
        return None
    return lambda address, _node: selections.is_statement_selected(state_id, location, address)


def _subexpression_notes(selections: SelectionState | None, context: ProofStateContext,
                         state_id: ProofStateId) -> dict[ProofStateLocation, list[str]]:
    """Lines for the selected formula sub-expressions of a context, by location."""
    notes: dict[ProofStateLocation, list[str]] = {}
    if selections is None:
        return notes
    for _, location, address, node in walk_context(context, state_id):
        if not isinstance(node, str):
            continue
        subs = selections.selected_subexpressions(state_id, location, address)
        if not subs:
            continue
        formulas = formula_sources(node)
        for sub in subs:
            formula = formulas[sub.index] if sub.index < len(formulas) else "?"
            notes.setdefault(location, []).append(
                f"      selected ${sub.text}$ in ${formula}$ "
                f"[{sub.source_start}:{sub.source_end}] at {format_address(address)}")
    return notes


def render_context(
    context: ProofStateContext,
    state_id: ProofStateId,
    selections: SelectionState | None = None,
) -> list[str]:
    lines = []
    notes = _subexpression_notes(selections, context, state_id)

    if context.variables:
        lines.append("VARIABLES")
        for var in context.variables:
            name_loc = ProofStateLocation("variable", var.name)
            body_loc = ProofStateLocation("variable_body", var.name)
            indicator = KIND_INDICATORS[var.kind]
            name = render_statement(var.name, _marker(selections, state_id, name_loc))
            desc = render_statement(var.description, _marker(selections, state_id, body_loc))
            line = f"  {indicator + ' ' if indicator else ''}{name} : {desc}"
            if var.kind == "let":
                line += f" ≔ {var.value}"
            lines.append(line)
            lines.extend(notes.get(name_loc, []))
            lines.extend(notes.get(body_loc, []))

    if context.hypotheses:
        lines.append("HYPOTHESES")
        for hyp in context.hypotheses:
            loc = ProofStateLocation("hypothesis", hyp.label)
            lines.append(f"  • {render_statement(hyp.statement, _marker(selections, state_id, loc))}"
                         f"    ({hyp.label})")
            lines.extend(notes.get(loc, []))

    if context.goals:
        lines.append("GOALS")
        for goal in context.goals:
            loc = ProofStateLocation("goal", goal.label)
            lines.append(f"  ⊢ {render_statement(goal.statement, _marker(selections, state_id, loc))}"
                         f"    ({goal.label})")
            lines.extend(notes.get(loc, []))

    return lines


def render_proof_state(
    proof_state: ProofState,
    proof_node_id: int,
    selections: SelectionState | None = None,
) -> str:
    """Render every context of a proof state, marking active selections."""
    if not proof_state:
        return "(no contexts)"
    blocks = []
    for ctx_idx, context in enumerate(proof_state):
        state_id = ProofStateId(proof_node_id, ctx_idx)
        lines = [f"=== Context {ctx_idx} ==="]
        lines.extend(render_context(context, state_id, selections) or ["  (empty)"])
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)
