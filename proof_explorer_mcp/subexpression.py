"""Sub-expressions of a typeset formula and point hit-testing over their boxes."""

import json
from dataclasses import dataclass, field
from xml.etree import ElementTree


@dataclass(frozen=True)
class SubExpressionCore:
    """A contiguous slice [source_start, source_end) of one formula's source."""
    text: str
    source_start: int
    source_end: int


@dataclass(frozen=True)
class SubExpression(SubExpressionCore):
    """A sub-expression plus its bounding box in the rendered artwork."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def area(self) -> float:
        return self.width * self.height

    def contains(self, x: float, y: float) -> bool:
        """Inclusive of the box edges."""
        return self.x <= x <= self.x + self.width and self.y <= y <= self.y + self.height

    @property
    def core(self) -> SubExpressionCore:
        return SubExpressionCore(self.text, self.source_start, self.source_end)


@dataclass(frozen=True)
class SubExpressionCoreWithIndex(SubExpressionCore):
    """A sub-expression of the `index`-th formula (0-based) in an atomic statement."""
    index: int = 0


def are_subexpression_selections_equal(a: SubExpressionCoreWithIndex, b: SubExpressionCoreWithIndex) -> bool:
    return (a.text == b.text
            and a.source_start == b.source_start
            and a.source_end == b.source_end
            and a.index == b.index)


def selection_payload(sub: SubExpressionCore, index: int) -> SubExpressionCoreWithIndex:
    """Strip a sub-expression down to the fields that identify a selection."""
    return SubExpressionCoreWithIndex(sub.text, sub.source_start, sub.source_end, index)


def find_smallest_at_point(subexpressions: list[SubExpression], x: float, y: float) -> int | None:
    """Index of the smallest-area box containing (x, y), or None.

    Boxes nest (a fraction's box encloses its numerator's), so the smallest
    enclosing box is the most specific sub-expression. Ties go to the box
    listed first.
    """
    best = None
    best_area = float("inf")
    for i, sub in enumerate(subexpressions):
        if sub.contains(x, y) and sub.area < best_area:
            best = i
            best_area = sub.area
    return best


# =============================================================================
# Coordinate mapping
# =============================================================================

@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle: a formula's logical viewBox or its on-screen box."""
    x: float
    y: float
    width: float
    height: float


def to_intrinsic(viewbox: Rect, screen: Rect, px: float, py: float) -> tuple[float, float]:
    """Map a display-space point into the formula's own coordinate space.

    Scale is taken per axis (viewbox size over screen size); no rotation.
    """
    if screen.width <= 0 or screen.height <= 0:
        raise ValueError(f"Screen rectangle must have positive size, got {screen}")
    scale_x = viewbox.width / screen.width
    scale_y = viewbox.height / screen.height
    return ((px - screen.x) * scale_x + viewbox.x,
            (py - screen.y) * scale_y + viewbox.y)


def hit_test(
    subexpressions: list[SubExpression],
    viewbox: Rect,
    screen: Rect,
    px: float,
    py: float,
) -> int | None:
    """Smallest sub-expression under a display-space point, or None."""
    x, y = to_intrinsic(viewbox, screen, px, py)
    return find_smallest_at_point(subexpressions, x, y)


# =============================================================================
# Typesetting engine reply
# =============================================================================

class CompilationError(Exception):
    """The typesetting engine rejected one formula. Other formulas are unaffected."""

    def __init__(self, source: str, message: str):
        super().__init__(message)
        self.source = source
        self.message = message


@dataclass
class CompiledFormula:
    """Artwork and sub-expression boxes for one formula."""
    source: str
    svg: str
    subexpressions: list[SubExpression] = field(default_factory=list)
    viewbox: Rect | None = None


def parse_viewbox(svg: str) -> Rect | None:
    """Extract the viewBox of the root <svg> element, if declared."""
    try:
        root = ElementTree.fromstring(svg)
    except ElementTree.ParseError:
        return None
    if root.tag.rsplit("}", 1)[-1] != "svg":
        return None
    raw = root.get("viewBox")
    if raw is None:
        return None
    try:
        x, y, w, h = (float(v) for v in raw.replace(",", " ").split())
    except ValueError:
        return None
    return Rect(x, y, w, h)


def parse_compile_output(source: str, output: str) -> CompiledFormula:
    """Decode the engine's JSON reply for `source`.

    Expects: {"svg": "...", "subexpressions": [{"text", "source_start",
    "source_end", "x", "y", "width", "height"}, ...]} or {"error": "message"}.

    Raises:
        CompilationError: If the engine reported an error or the reply is malformed.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise CompilationError(source, f"Malformed engine output: {e}") from e
    if not isinstance(data, dict):
        raise CompilationError(source, f"Unexpected engine output: {output[:200]}")
    if "error" in data:
        raise CompilationError(source, str(data["error"]))
    if "svg" not in data:
        raise CompilationError(source, f"Unexpected JSON structure: {sorted(data)}")

    try:
        subexpressions = [
            SubExpression(
                text=str(item["text"]),
                source_start=int(item["source_start"]),
                source_end=int(item["source_end"]),
                x=float(item["x"]),
                y=float(item["y"]),
                width=float(item["width"]),
                height=float(item["height"]),
            )
            for item in data.get("subexpressions") or []
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise CompilationError(source, f"Malformed sub-expression in output: {e}") from e

    return CompiledFormula(
        source=source,
        svg=data["svg"],
        subexpressions=subexpressions,
        viewbox=parse_viewbox(data["svg"]),
    )
