"""Test the proof explorer MCP server tools."""

import json

import pytest

from proof_explorer_mcp import server
from proof_explorer_mcp.server import (
    proof_init as _proof_init,
    proof_transition as _proof_transition,
    proof_repair as _proof_repair,
    proof_focus as _proof_focus,
    proof_finish as _proof_finish,
    proof_graph as _proof_graph,
    proof_show as _proof_show,
    proof_sessions as _proof_sessions,
    proof_drop as _proof_drop,
    select_toggle as _select_toggle,
    select_formula as _select_formula,
    select_clear as _select_clear,
    select_list as _select_list,
    formula_compile as _formula_compile,
)
from proof_explorer_mcp.typesetter import Typesetter

# Unwrap FunctionTool to get actual functions
proof_init = _proof_init.fn
proof_transition = _proof_transition.fn
proof_repair = _proof_repair.fn
proof_focus = _proof_focus.fn
proof_finish = _proof_finish.fn
proof_graph = _proof_graph.fn
proof_show = _proof_show.fn
proof_sessions = _proof_sessions.fn
proof_drop = _proof_drop.fn
select_toggle = _select_toggle.fn
select_formula = _select_formula.fn
select_clear = _select_clear.fn
select_list = _select_list.fn
formula_compile = _formula_compile.fn


def goal_state(statement):
    return [{"variables": [], "hypotheses": [], "goals": [{"label": "g", "statement": statement}]}]


@pytest.fixture
async def session(mcp_sessions, sample_proof_state_json):
    result = await proof_init(statement="Prove the sum", proof_state=sample_proof_state_json)
    assert "Session 'default' initialized." in result
    return mcp_sessions["default"]


# =============================================================================
# Proof discovery
# =============================================================================

async def test_init_renders_initial_state(mcp_sessions, sample_proof_state_json):
    result = await proof_init(statement="P", proof_state=json.dumps(sample_proof_state_json), session="s1")
    assert "Session 's1' initialized." in result
    assert "=== Context 0 ===" in result
    assert "⊢ The sum $a + b$ is equal to $c$    (g1)" in result
    assert mcp_sessions["s1"].discovery.order == 1


async def test_init_rejects_bad_proof_state(mcp_sessions):
    result = await proof_init(statement="P", proof_state="{not json")
    assert result.startswith("ERROR: Invalid proof state")
    result = await proof_init(statement="P", proof_state=[{"variables": []}])
    assert result.startswith("ERROR: Invalid proof state")
    assert "default" not in mcp_sessions


async def test_tools_require_session(mcp_sessions):
    for result in [
        await proof_transition(kind="weakening", description="w", proof_state=goal_state("$p$")),
        await proof_focus(node_id=0),
        await proof_graph(),
        await proof_show(),
        await select_list(),
    ]:
        assert "Session 'default' not found" in result


async def test_transition_and_graph(session):
    result = await proof_transition(kind="weakening", description="drop h2", proof_state=goal_state("$q$"))
    assert result.startswith("Node 1 (weakening: drop h2)")
    await proof_transition(kind="equivalence", description="rewrite", proof_state=goal_state("$r$"))
    await proof_focus(node_id=0)
    await proof_transition(kind="strengthening", description="add hyp", proof_state=goal_state("$s$"))
    await proof_transition(kind="other", description="guess", proof_state=goal_state("$t$"))

    graph = await proof_graph()
    assert "Problem: Prove the sum" in graph
    assert "Status: open" in graph
    assert "Current node: 4" in graph
    assert "Nodes (5):" in graph
    assert "  0 -> 1  weakening: drop h2" in graph
    assert "  2 <-> 1  equivalence: rewrite" in graph
    assert "  3 -> 0  strengthening: add hyp" in graph
    assert "  4 ~> 3  other: guess" in graph
    assert "Nodes implying current: None" in graph

    await proof_focus(node_id=2)
    graph = await proof_graph()
    assert "Nodes implying current: 0, 1, 3" in graph


async def test_transition_rejects_unknown_kind(session):
    result = await proof_transition(kind="sideways", description="x", proof_state=goal_state("$p$"))
    assert result.startswith("ERROR: kind must be one of")
    assert session.discovery.order == 1


async def test_focus_and_repair_unknown_node(session):
    assert await proof_focus(node_id=9) == "ERROR: Node with ID 9 does not exist."
    result = await proof_repair(node_id=9, proof_state=goal_state("$p$"))
    assert result == "ERROR: Node with ID 9 does not exist."
    assert session.discovery.current_node_id == 0


async def test_repair_replaces_state_and_drops_its_selections(session):
    await select_toggle(node_id=0, location_kind="goal", label="g1")
    result = await proof_repair(node_id=0, proof_state=goal_state("$p and q$"))
    assert result.startswith("Node 0 repaired.")
    assert "⊢ $p and q$    (g)" in result
    assert len(session.selections) == 0


async def test_finish(session):
    result = await proof_finish()
    assert result == "Session 'default' solved: Prove the sum"
    assert "Status: SOLVED" in await proof_graph()


async def test_show_defaults_to_current_node(session):
    await proof_transition(kind="weakening", description="w", proof_state=goal_state("$q$"))
    result = await proof_show()
    assert result.startswith("=== Node 1 ===")
    assert "$q$" in result
    result = await proof_show(node_id=0)
    assert "(g1)" in result
    assert (await proof_show(node_id=3)).startswith("ERROR")


async def test_sessions_and_drop(session):
    result = await proof_sessions()
    assert "default" in result
    assert "open" in result
    assert await proof_drop() == "Session 'default' dropped."
    assert await proof_drop() == "Session 'default' not found."
    assert await proof_sessions() == "No active sessions."


async def test_idle_session_is_kept(session):
    session.last_used -= 30 * 24 * 3600
    graph = await proof_graph()
    assert "Problem: Prove the sum" in graph
    assert "default" in await proof_sessions()
    assert await select_list() == "No selections."


async def test_reinit_clears_selections(session, sample_proof_state_json):
    await select_toggle(node_id=0, location_kind="goal", label="g1")
    await proof_init(statement="Again", proof_state=sample_proof_state_json)
    assert await select_list() == "No selections."


# =============================================================================
# Selections
# =============================================================================

async def test_select_toggle_nested_statement(session):
    address = ["implication_antecedent", {"kind": "conjunction", "idx": 1}]
    result = await select_toggle(node_id=0, location_kind="hypothesis", label="h2", address=address)
    assert result == ("Selected hypothesis 'h2' at /implication_antecedent/conjunction[1]: "
                      "$c$ is prime")
    shown = await proof_show(node_id=0)
    assert "($a + b > 0$ ∧ [[$c$ is prime]]) ⇒ $a b c != 0$" in shown

    result = await select_toggle(node_id=0, location_kind="hypothesis", label="h2", address=address)
    assert result.startswith("Deselected")
    assert len(session.selections) == 0


async def test_select_toggle_errors(session):
    assert "location_kind must be one of" in await select_toggle(
        node_id=0, location_kind="lemma", label="g1")
    assert await select_toggle(node_id=4, location_kind="goal", label="g1") == \
        "ERROR: Node with ID 4 does not exist."
    assert "no context 2" in await select_toggle(node_id=0, location_kind="goal", label="g1", context=2)
    result = await select_toggle(node_id=0, location_kind="goal", label="missing")
    assert result.startswith("ERROR") and "missing" in result
    result = await select_toggle(node_id=0, location_kind="goal", label="g1", address=["negation"])
    assert result.startswith("ERROR")
    assert len(session.selections) == 0


async def test_select_in_second_context(session):
    result = await select_toggle(node_id=0, location_kind="goal", label="g2", context=1,
                                 address=["negation"])
    assert result.startswith("Selected goal 'g2' at /negation")
    sel = session.selections.selections[0]
    assert sel.proof_state_id == server.ProofStateId(0, 1)


async def test_select_formula_intrinsic_point(session):
    # "a + b" is the first formula of g1; "+" occupies x in [21, 29]
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=25, y=10)
    assert result == "Selected $+$ [2:3] in formula 0 of goal 'g1' at /"
    listing = await select_list()
    assert "Selections (1):" in listing
    assert "goal 'g1' /: formula 0 $+$ [2:3]" in listing
    shown = await proof_show(node_id=0)
    assert "selected $+$ in $a + b$ [2:3] at /" in shown

    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=25, y=10)
    assert result.startswith("Deselected $+$")


async def test_select_formula_outer_box_and_miss(session):
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=15, y=1)
    assert result.startswith("Selected $a + b$ [0:5]")
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=100, y=100)
    assert result == "No sub-expression at (100, 100) in $a + b$"


async def test_select_formula_screen_point(session):
    # viewBox is 50x20, drawn at 2x starting from (100, 50)
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=150, y=70,
                                  screen=[100, 50, 100, 40])
    assert result.startswith("Selected $+$ [2:3]")
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=150, y=70,
                                  screen=[100, 50])
    assert result.startswith("ERROR: screen must be")


async def test_select_formula_rejects_non_numeric_screen(session):
    for screen in ([100, 50, "wide", 40], [100, None, 100, 40], [100, 50, 0, 40]):
        result = await select_formula(node_id=0, location_kind="goal", label="g1", x=150, y=70,
                                      screen=screen)
        assert result.startswith("ERROR: Invalid screen rectangle")
    assert len(session.selections) == 0


async def test_select_formula_second_formula_and_same_text(session):
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=5, y=10,
                                  formula_index=1)
    assert result == "Selected $c$ [0:1] in formula 1 of goal 'g1' at /"
    # A hit at another location is a separate selection
    result = await select_formula(node_id=0, location_kind="variable_body", label="f", x=5, y=10)
    assert result.startswith("Selected $R$ [0:1]")
    assert len(session.selections) == 2


async def test_select_formula_errors(session):
    result = await select_formula(node_id=0, location_kind="hypothesis", label="h1", x=1, y=1)
    assert result == "ERROR: / is not an atomic statement"
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=1, y=1, formula_index=2)
    assert result.startswith("ERROR: Statement has 2 formula(s)")
    await proof_transition(kind="other", description="o", proof_state=goal_state("$x ERR$"))
    result = await select_formula(node_id=1, location_kind="goal", label="g", x=1, y=1)
    assert result.startswith("ERROR: Math compilation failed for $x ERR$")


async def test_select_formula_without_typesetter(session, monkeypatch):
    monkeypatch.setattr(server, "_typesetter", Typesetter(module="proof_explorer_no_such_backend"))
    result = await select_formula(node_id=0, location_kind="goal", label="g1", x=25, y=10)
    assert result.startswith("ERROR: Typesetter not ready")
    assert len(session.selections) == 0


async def test_select_clear_scopes(session):
    await proof_transition(kind="weakening", description="w", proof_state=goal_state("$q$"))
    await select_toggle(node_id=0, location_kind="goal", label="g1")
    await select_toggle(node_id=0, location_kind="goal", label="g2", context=1)
    await select_toggle(node_id=1, location_kind="goal", label="g")

    assert await select_clear(node_id=0, context=1) == "Cleared 1 selection(s)."
    assert await select_clear(node_id=0) == "Cleared 1 selection(s)."
    assert await select_clear() == "Cleared 1 selection(s)."
    assert await select_clear() == "Cleared 0 selection(s)."


# =============================================================================
# Typesetting
# =============================================================================

async def test_formula_compile(mcp_sessions):
    result = await formula_compile(source="x+1")
    assert "Formula: $x+1$" in result
    assert "viewBox: 0.0 0.0 30.0 20.0" in result
    assert "Sub-expressions (4):" in result
    assert "  [2] $+$ [1:2] at (11.0, 2.0) 8.0x16.0" in result


async def test_formula_compile_error(mcp_sessions):
    result = await formula_compile(source="ERR")
    assert result.startswith("ERROR: unknown variable")
