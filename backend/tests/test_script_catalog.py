"""
Catalogue de scripts - validation du graphe, versionnage, scripts modèles
"""

import pytest

from models import NodeType, ScriptCategory, ScriptNodeOption
from services.errors import CommandValidationError
from services.script_catalog import (
    get_default_script,
    get_script_with_nodes,
    list_scripts,
    publish_script,
    seed_default_scripts,
    validate_script_graph,
)
from services.script_templates import build_template
from tests.helpers import node, script_payload


class TestGraphValidation:

    def test_valid_linear_script(self):
        nodes = [
            node("a", NodeType.YES_NO, 5, yes_next_node_id="b", no_next_node_id="b"),
            node("b", NodeType.OPEN_TEXT, 5),
        ]
        assert validate_script_graph("a", nodes) == []

    def test_empty_script(self):
        assert validate_script_graph(None, []) == ["Le script ne contient aucun nœud"]

    def test_dangling_reference(self):
        nodes = [node("a", NodeType.INFO, default_next_id="fantome")]
        problems = validate_script_graph("a", nodes)
        assert len(problems) == 1
        assert "fantome" in problems[0]

    def test_unknown_root(self):
        problems = validate_script_graph("zz", [node("a", NodeType.INFO)])
        assert any("racine" in p for p in problems)

    def test_duplicate_node_ids(self):
        problems = validate_script_graph("a", [node("a", NodeType.INFO), node("a", NodeType.INFO)])
        assert any("dupliqué" in p for p in problems)

    def test_cycle_is_detected(self):
        nodes = [
            node("a", NodeType.INFO, default_next_id="b"),
            node("b", NodeType.YES_NO, 5, yes_next_node_id="c", no_next_node_id="a"),
            node("c", NodeType.OPEN_TEXT, 5),
        ]
        problems = validate_script_graph("a", nodes)
        assert len(problems) == 1
        assert problems[0].startswith("Cycle détecté")
        print(f"✅ {problems[0]}")

    def test_diamond_is_not_a_cycle(self):
        nodes = [
            node("a", NodeType.YES_NO, 5, yes_next_node_id="b", no_next_node_id="c"),
            node("b", NodeType.INFO, default_next_id="d"),
            node("c", NodeType.INFO, default_next_id="d"),
            node("d", NodeType.OPEN_TEXT, 5),
        ]
        assert validate_script_graph("a", nodes) == []

    def test_choice_without_options(self):
        problems = validate_script_graph("a", [node("a", NodeType.CHOICE, 5)])
        assert any("CHOICE" in p for p in problems)

    def test_choice_impact_above_weight(self):
        nodes = [node("a", NodeType.CHOICE, 5, options=[ScriptNodeOption(value="X", score_impact=8)])]
        problems = validate_script_graph("a", nodes)
        assert any("hors de [0, 5]" in p for p in problems)

    def test_duplicate_option_values(self):
        nodes = [node("a", NodeType.CHOICE, 5, options=[
            ScriptNodeOption(value="X", score_impact=1),
            ScriptNodeOption(value="X", score_impact=2),
        ])]
        assert any("dupliquées" in p for p in validate_script_graph("a", nodes))

    def test_branches_reserved_to_yes_no(self):
        nodes = [node("a", NodeType.OPEN_TEXT, 5, yes_next_node_id="b"), node("b", NodeType.INFO)]
        assert any("YES_NO" in p for p in validate_script_graph("a", nodes))

    def test_templates_are_valid(self):
        for category in ScriptCategory:
            template = build_template(category)
            assert validate_script_graph(template.root_node_id, template.nodes) == [], category


class TestPublish:

    @pytest.mark.asyncio
    async def test_invalid_graph_is_not_stored(self, fake_db):
        payload = script_payload([node("a", NodeType.INFO, default_next_id="fantome")])

        with pytest.raises(CommandValidationError) as exc:
            await publish_script(payload, "org-test")

        assert exc.value.field == "nodes"
        assert fake_db.qualification_scripts.docs == []

    @pytest.mark.asyncio
    async def test_republish_creates_new_version(self, fake_db):
        nodes = [node("a", NodeType.YES_NO, 5)]
        v1 = await publish_script(script_payload(nodes), "org-test")
        v2 = await publish_script(script_payload(nodes), "org-test")

        assert (v1.version, v2.version) == (1, 2)
        assert v1.id != v2.id

        stored_v1 = fake_db.qualification_scripts.get(id=v1.id)
        assert stored_v1["is_active"] is False
        assert stored_v1["superseded_at"]
        # la version 1 reste lisible pour les exécutions qui la référencent
        assert (await get_script_with_nodes(v1.id)).version == 1

        active = await list_scripts("org-test")
        assert [s["id"] for s in active] == [v2.id]
        assert "nodes" not in active[0]
        assert len(await list_scripts("org-test", include_inactive=True)) == 2

    @pytest.mark.asyncio
    async def test_single_default_per_organization(self, fake_db):
        first = await publish_script(script_payload([node("a", NodeType.INFO)], name="Un", is_default=True), "org-test")
        second = await publish_script(script_payload([node("a", NodeType.INFO)], name="Deux", is_default=True), "org-test")

        assert fake_db.qualification_scripts.get(id=first.id)["is_default"] is False
        assert (await get_default_script("org-test")).id == second.id

    @pytest.mark.asyncio
    async def test_nodes_returned_in_order(self, fake_db):
        nodes = [
            node("b", NodeType.OPEN_TEXT, 5, ordre=2),
            node("a", NodeType.INFO, ordre=1, default_next_id="b"),
        ]
        script = await publish_script(script_payload(nodes, root="a"), "org-test")
        loaded = await get_script_with_nodes(script.id)
        assert [n.id for n in loaded.nodes] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unknown_script(self, fake_db):
        assert await get_script_with_nodes("inexistant") is None


class TestDefaults:

    @pytest.mark.asyncio
    async def test_seed_only_once(self, fake_db):
        created = await seed_default_scripts("org-test", ScriptCategory.CFA)
        again = await seed_default_scripts("org-test", ScriptCategory.CFA)

        assert created.category == ScriptCategory.CFA
        assert created.is_default is True
        assert again is None
        assert len(fake_db.qualification_scripts.docs) == 1

    @pytest.mark.asyncio
    async def test_default_falls_back_to_first_active(self, fake_db):
        script = await publish_script(script_payload([node("a", NodeType.INFO)]), "org-test")
        assert (await get_default_script("org-test")).id == script.id
        assert await get_default_script("autre-org") is None
