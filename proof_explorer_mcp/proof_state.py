"""Proof state data model: statements, contexts, and statement addresses.

An atomic statement is natural language interspersed with formulas enclosed
in dollar quotes, e.g. "The function $f$ is injective". Compound statements
join atomic ones with logical connectives and quantifiers. A proof state is
an ordered list of contexts, each holding variables, hypotheses and goals.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, Literal, assert_never, get_args

AtomicStatement = str

FORMULA_MARKER = "$"


@dataclass(frozen=True)
class Variable:
    """A variable whose description carries its type, e.g. name "f", description "$A -> B$"."""
    name: str
    description: AtomicStatement


@dataclass(frozen=True)
class ContextVariable:
    """A variable in a proof context.

    free: arbitrary but fixed. meta: to be instantiated later.
    let: defined to be equal to `value`.
    """
    kind: Literal["free", "meta", "let"]
    name: str
    description: AtomicStatement
    value: AtomicStatement | None = None

    def __post_init__(self):
        if self.kind not in ("free", "meta", "let"):
            raise ValueError(f"Unknown variable kind: {self.kind!r}")
        if (self.kind == "let") != (self.value is not None):
            raise ValueError(f"Only 'let' variables carry a value (got kind {self.kind!r})")

    @property
    def variable(self) -> Variable:
        return Variable(self.name, self.description)


@dataclass(frozen=True)
class Conjunction:
    statements: tuple["Statement", ...] = ()


@dataclass(frozen=True)
class Disjunction:
    statements: tuple["Statement", ...] = ()


@dataclass(frozen=True)
class Negation:
    statement: "Statement"


@dataclass(frozen=True)
class Implication:
    antecedent: "Statement"
    consequent: "Statement"


@dataclass(frozen=True)
class Equivalence:
    left: "Statement"
    right: "Statement"


@dataclass(frozen=True)
class Universal:
    variable: Variable
    statement: "Statement"


@dataclass(frozen=True)
class Existential:
    variable: Variable
    statement: "Statement"


@dataclass(frozen=True)
class Highlight:
    """Display annotation only; carries no logical meaning."""
    statement: "Statement"


Statement = (
    AtomicStatement | Conjunction | Disjunction | Negation | Implication
    | Equivalence | Universal | Existential | Highlight
)


@dataclass(frozen=True)
class LabelledStatement:
    label: str
    statement: Statement


@dataclass(frozen=True)
class ProofStateContext:
    variables: tuple[ContextVariable, ...] = ()
    hypotheses: tuple[LabelledStatement, ...] = ()
    goals: tuple[LabelledStatement, ...] = ()


ProofState = tuple[ProofStateContext, ...]


# =============================================================================
# Addressing
# =============================================================================

CoordinateKind = Literal[
    "conjunction", "disjunction",
    "implication_antecedent", "implication_consequent",
    "negation",
    "equivalence_left", "equivalence_right",
    "universal_var", "existential_var",
    "universal_var_type", "existential_var_type",
    "universal_body", "existential_body",
    "highlight",
]

_INDEXED_KINDS = frozenset({"conjunction", "disjunction"})


@dataclass(frozen=True)
class StatementCoordinate:
    """One edge from a statement to one of its immediate children.

    Only conjunction/disjunction coordinates carry an index.
    """
    kind: CoordinateKind
    idx: int | None = None

    def __str__(self) -> str:
        return f"{self.kind}[{self.idx}]" if self.idx is not None else self.kind


StatementAddress = tuple[StatementCoordinate, ...]

ROOT: StatementAddress = ()


def are_statement_addresses_equal(a: StatementAddress, b: StatementAddress) -> bool:
    """Order-sensitive structural equality of two addresses."""
    if len(a) != len(b):
        return False
    return all(x.kind == y.kind and x.idx == y.idx for x, y in zip(a, b))


def format_address(address: StatementAddress) -> str:
    """Render an address as a slash-separated path ("/" for the root)."""
    return "/" + "/".join(str(c) for c in address)


def statement_children(statement: Statement) -> list[tuple[Statement, StatementCoordinate]]:
    """Immediate children of a statement in canonical field order.

    Quantifier binders contribute their name and description as atomic
    children ahead of the body.
    """
    match statement:
        case str():
            return []
        case Conjunction(statements=children):
            return [(s, StatementCoordinate("conjunction", i)) for i, s in enumerate(children)]
        case Disjunction(statements=children):
            return [(s, StatementCoordinate("disjunction", i)) for i, s in enumerate(children)]
        case Negation(statement=child):
            return [(child, StatementCoordinate("negation"))]
        case Implication(antecedent=a, consequent=c):
            return [
                (a, StatementCoordinate("implication_antecedent")),
                (c, StatementCoordinate("implication_consequent")),
            ]
        case Equivalence(left=left, right=right):
            return [
                (left, StatementCoordinate("equivalence_left")),
                (right, StatementCoordinate("equivalence_right")),
            ]
        case Universal(variable=var, statement=body):
            return [
                (var.name, StatementCoordinate("universal_var")),
                (var.description, StatementCoordinate("universal_var_type")),
                (body, StatementCoordinate("universal_body")),
            ]
        case Existential(variable=var, statement=body):
            return [
                (var.name, StatementCoordinate("existential_var")),
                (var.description, StatementCoordinate("existential_var_type")),
                (body, StatementCoordinate("existential_body")),
            ]
        case Highlight(statement=child):
            return [(child, StatementCoordinate("highlight"))]
        case _:
            assert_never(statement)


def walk_statement(
    statement: Statement, address: StatementAddress = ROOT
) -> Iterator[tuple[StatementAddress, Statement]]:
    """Depth-first pre-order traversal yielding (address, node) pairs.

    Addresses are positional and recomputed on every walk. An address stored
    before a structural edit (say, a conjunct inserted ahead of it) will
    afterwards point at whatever node now occupies that position.
    """
    yield address, statement
    for child, coord in statement_children(statement):
        yield from walk_statement(child, address + (coord,))


class AddressError(LookupError):
    """An address does not resolve within a statement."""
    pass


def statement_at(statement: Statement, address: StatementAddress) -> Statement:
    """Resolve an address relative to `statement`.

    Raises:
        AddressError: If some coordinate does not apply to the node reached.
    """
    node = statement
    for depth, coord in enumerate(address):
        for child, child_coord in statement_children(node):
            if child_coord == coord:
                node = child
                break
        else:
            raise AddressError(
                f"Coordinate {coord} does not apply at {format_address(address[:depth])}"
            )
    return node


def statement_kind(statement: Statement) -> str:
    """Tag name of a statement ("atomic" for plain text)."""
    match statement:
        case str():
            return "atomic"
        case Conjunction():
            return "conjunction"
        case Disjunction():
            return "disjunction"
        case Negation():
            return "negation"
        case Implication():
            return "implication"
        case Equivalence():
            return "equivalence"
        case Universal():
            return "universal"
        case Existential():
            return "existential"
        case Highlight():
            return "highlight"
        case _:
            assert_never(statement)


# =============================================================================
# Atomic statement segments
# =============================================================================

@dataclass(frozen=True)
class Segment:
    """A run of plain text or a formula within an atomic statement."""
    type: Literal["text", "math"]
    content: str


def parse_atomic_statement(text: AtomicStatement) -> list[Segment]:
    """Split an atomic statement into alternating text and math segments.

    Each `$` toggles between text and math. Empty segments are dropped, and
    an unmatched trailing `$` closes the last formula at end of string.

    Example: "The value $x + y$ equals $z$" gives
    text "The value ", math "x + y", text " equals ", math "z".
    """
    segments = []
    in_math = False
    for i, content in enumerate(text.split(FORMULA_MARKER)):
        if i > 0:
            in_math = not in_math
        if content:
            segments.append(Segment("math" if in_math else "text", content))
    return segments


def formula_sources(text: AtomicStatement) -> list[str]:
    """Formula sources of an atomic statement; list position is the formula index."""
    return [s.content for s in parse_atomic_statement(text) if s.type == "math"]


# =============================================================================
# Locations within a context
# =============================================================================

LocationKind = Literal["variable", "variable_body", "hypothesis", "goal"]


@dataclass(frozen=True)
class ProofStateLocation:
    """Which named slot of a context a statement tree sits in."""
    kind: LocationKind
    label: str


def iter_locations(context: ProofStateContext) -> Iterator[tuple[ProofStateLocation, Statement]]:
    """Every statement tree of a context, in display order."""
    for var in context.variables:
        yield ProofStateLocation("variable", var.name), var.name
        yield ProofStateLocation("variable_body", var.name), var.description
    for hyp in context.hypotheses:
        yield ProofStateLocation("hypothesis", hyp.label), hyp.statement
    for goal in context.goals:
        yield ProofStateLocation("goal", goal.label), goal.statement


def context_statement(context: ProofStateContext, location: ProofStateLocation) -> Statement:
    """Statement tree at `location`.

    Raises:
        KeyError: If no variable/hypothesis/goal carries that label.
    """
    for loc, statement in iter_locations(context):
        if loc == location:
            return statement
    raise KeyError(f"No {location.kind} labelled {location.label!r} in context")


# =============================================================================
# JSON wire format
# =============================================================================

class ProofStateParseError(ValueError):
    """Malformed proof state JSON."""
    pass


def _require(obj: Any, key: str, kind: type | tuple[type, ...], context: str) -> Any:
    """Fetch obj[key], checking that obj is an object and the value has the expected type."""
    if not isinstance(obj, dict):
        raise ProofStateParseError(f"Expected object for {context}, got {type(obj).__name__}")
    if key not in obj:
        raise ProofStateParseError(f"Missing '{key}' in {context}")
    value = obj[key]
    if not isinstance(value, kind):
        expected = " or ".join(k.__name__ for k in kind) if isinstance(kind, tuple) else kind.__name__
        raise ProofStateParseError(
            f"'{key}' in {context} must be {expected}, got {type(value).__name__}"
        )
    return value


def variable_from_json(obj: Any) -> Variable:
    return Variable(
        name=_require(obj, "name", str, "variable"),
        description=_require(obj, "description", str, "variable"),
    )


def statement_from_json(obj: Any) -> Statement:
    """Decode a statement: a JSON string is atomic, an object carries `kind`."""
    if isinstance(obj, str):
        return obj
    kind = _require(obj, "kind", str, "statement")
    if kind in ("conjunction", "disjunction"):
        children = tuple(statement_from_json(s) for s in _require(obj, "statements", list, kind))
        return Conjunction(children) if kind == "conjunction" else Disjunction(children)
    if kind == "negation":
        return Negation(statement_from_json(_require(obj, "statement", (str, dict), kind)))
    if kind == "implication":
        return Implication(
            statement_from_json(_require(obj, "antecedent", (str, dict), kind)),
            statement_from_json(_require(obj, "consequent", (str, dict), kind)),
        )
    if kind == "equivalence":
        return Equivalence(
            statement_from_json(_require(obj, "left", (str, dict), kind)),
            statement_from_json(_require(obj, "right", (str, dict), kind)),
        )
    if kind in ("universal", "existential"):
        var = variable_from_json(_require(obj, "variable", dict, kind))
        body = statement_from_json(_require(obj, "statement", (str, dict), kind))
        return Universal(var, body) if kind == "universal" else Existential(var, body)
    if kind == "highlight":
        return Highlight(statement_from_json(_require(obj, "statement", (str, dict), kind)))
    raise ProofStateParseError(f"Unknown statement kind: {kind!r}")


def statement_to_json(statement: Statement) -> Any:
    match statement:
        case str():
            return statement
        case Conjunction(statements=children) | Disjunction(statements=children):
            return {"kind": statement_kind(statement),
                    "statements": [statement_to_json(s) for s in children]}
        case Negation(statement=child) | Highlight(statement=child):
            return {"kind": statement_kind(statement), "statement": statement_to_json(child)}
        case Implication(antecedent=a, consequent=c):
            return {"kind": "implication",
                    "antecedent": statement_to_json(a), "consequent": statement_to_json(c)}
        case Equivalence(left=left, right=right):
            return {"kind": "equivalence",
                    "left": statement_to_json(left), "right": statement_to_json(right)}
        case Universal(variable=var, statement=body) | Existential(variable=var, statement=body):
            return {"kind": statement_kind(statement),
                    "variable": {"name": var.name, "description": var.description},
                    "statement": statement_to_json(body)}
        case _:
            assert_never(statement)


def _labelled_from_json(obj: Any, context: str) -> LabelledStatement:
    return LabelledStatement(
        label=_require(obj, "label", str, context),
        statement=statement_from_json(_require(obj, "statement", (str, dict), context)),
    )


def _unique_labels(items: list[LabelledStatement], context: str) -> tuple[LabelledStatement, ...]:
    seen = set()
    for item in items:
        if item.label in seen:
            raise ProofStateParseError(f"Duplicate {context} label: {item.label!r}")
        seen.add(item.label)
    return tuple(items)


def context_variable_from_json(obj: Any) -> ContextVariable:
    kind = _require(obj, "kind", str, "context variable")
    if kind not in ("free", "meta", "let"):
        raise ProofStateParseError(f"Unknown variable kind: {kind!r}")
    value = _require(obj, "value", str, "let variable") if kind == "let" else None
    var = variable_from_json(obj)
    return ContextVariable(kind=kind, name=var.name, description=var.description, value=value)


def proof_state_context_from_json(obj: Any) -> ProofStateContext:
    return ProofStateContext(
        variables=tuple(context_variable_from_json(v)
                        for v in _require(obj, "variables", list, "context")),
        hypotheses=_unique_labels(
            [_labelled_from_json(h, "hypothesis") for h in _require(obj, "hypotheses", list, "context")],
            "hypothesis"),
        goals=_unique_labels(
            [_labelled_from_json(g, "goal") for g in _require(obj, "goals", list, "context")],
            "goal"),
    )


def proof_state_from_json(obj: Any) -> ProofState:
    """Decode a proof state (a JSON list of contexts).

    Raises:
        ProofStateParseError: On any structural mismatch.
    """
    if not isinstance(obj, list):
        raise ProofStateParseError(f"Proof state must be a list of contexts, got {type(obj).__name__}")
    return tuple(proof_state_context_from_json(c) for c in obj)


def context_variable_to_json(var: ContextVariable) -> dict:
    result = {"kind": var.kind, "name": var.name, "description": var.description}
    if var.kind == "let":
        result["value"] = var.value
    return result


def proof_state_to_json(proof_state: ProofState) -> list[dict]:
    return [
        {
            "variables": [context_variable_to_json(v) for v in ctx.variables],
            "hypotheses": [{"label": h.label, "statement": statement_to_json(h.statement)}
                           for h in ctx.hypotheses],
            "goals": [{"label": g.label, "statement": statement_to_json(g.statement)}
                      for g in ctx.goals],
        }
        for ctx in proof_state
    ]


def coordinate_from_json(obj: Any) -> StatementCoordinate:
    """Decode a coordinate: a bare tag string, or {"kind", "idx"} for indexed tags."""
    if isinstance(obj, str):
        if obj in _INDEXED_KINDS:
            raise ProofStateParseError(f"Coordinate '{obj}' requires an index")
        if obj not in get_args(CoordinateKind):
            raise ProofStateParseError(f"Unknown coordinate: {obj!r}")
        return StatementCoordinate(obj)
    kind = _require(obj, "kind", str, "coordinate")
    if kind not in _INDEXED_KINDS:
        raise ProofStateParseError(f"Coordinate '{kind}' does not take an index")
    idx = _require(obj, "idx", int, "coordinate")
    if isinstance(idx, bool):
        raise ProofStateParseError("'idx' in coordinate must be int, got bool")
    return StatementCoordinate(kind, idx)


def coordinate_to_json(coord: StatementCoordinate) -> Any:
    if coord.idx is None:
        return coord.kind
    return {"kind": coord.kind, "idx": coord.idx}


def address_from_json(obj: Any) -> StatementAddress:
    if not isinstance(obj, list):
        raise ProofStateParseError(f"Address must be a list, got {type(obj).__name__}")
    return tuple(coordinate_from_json(c) for c in obj)


def address_to_json(address: StatementAddress) -> list:
    return [coordinate_to_json(c) for c in address]
