"""Pytest fixtures for proof explorer tests."""

import json

import pytest
from pathlib import Path

from proof_explorer_mcp import server
from proof_explorer_mcp.proof_state import proof_state_from_json, statement_from_json
from proof_explorer_mcp.typesetter import Typesetter


FIXTURES_DIR = Path(__file__).parent / "fixtures"

# Fake typesetter geometry: each source character is a 10x20 cell
CELL_WIDTH = 10
CELL_HEIGHT = 20


def fake_compile(source: str) -> str:
    """Stand-in for the typesetting engine's JSON reply.

    The whole formula gets one box; each non-space character gets a smaller
    box inside its cell. Sources containing "ERR" fail to compile.
    """
    if "ERR" in source:
        return json.dumps({"error": f"unknown variable: ERR in {source}"})
    width = CELL_WIDTH * len(source)
    subexpressions = [{
        "text": source, "source_start": 0, "source_end": len(source),
        "x": 0, "y": 0, "width": width, "height": CELL_HEIGHT,
    }]
    for i, ch in enumerate(source):
        if ch.isspace():
            continue
        subexpressions.append({
            "text": ch, "source_start": i, "source_end": i + 1,
            "x": CELL_WIDTH * i + 1, "y": 2, "width": CELL_WIDTH - 2, "height": CELL_HEIGHT - 4,
        })
    svg = (f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {width} {CELL_HEIGHT}" '
           f'width="{width}pt" height="{CELL_HEIGHT}pt"></svg>')
    return json.dumps({"svg": svg, "subexpressions": subexpressions})


@pytest.fixture
def sample_statements():
    """Statements covering every connective, decoded from fixtures/statements.json."""
    raw = json.loads((FIXTURES_DIR / "statements.json").read_text())
    return [statement_from_json(s) for s in raw]


@pytest.fixture
def sample_proof_state_json():
    return json.loads((FIXTURES_DIR / "proof_state.json").read_text())


@pytest.fixture
def sample_proof_state(sample_proof_state_json):
    return proof_state_from_json(sample_proof_state_json)


@pytest.fixture
def typesetter():
    return Typesetter(compile_fn=fake_compile)


@pytest.fixture
def mcp_sessions(monkeypatch, typesetter):
    """Isolated server session registry with the fake typesetter installed."""
    monkeypatch.setattr(server, "_sessions", {})
    monkeypatch.setattr(server, "_typesetter", typesetter)
    return server._sessions
