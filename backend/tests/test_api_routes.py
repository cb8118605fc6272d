"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  API - routes /api/scripts, /api/script-executions, /api/leads/{id}/rdv      ║
║                                                                              ║
║  Vérifie le câblage HTTP et la conversion des erreurs métier:                ║
║  NotFound -> 404, InvalidState -> 409, Validation / enum inconnu -> 400      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import httpx
import pytest
import pytest_asyncio

from server import app


@pytest_asyncio.fixture
async def api(fake_db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


SCRIPT = {
    "name": "Script API",
    "root_node_id": "q1",
    "is_default": True,
    "nodes": [
        {"id": "q1", "question": "Disponible ?", "type": "YES_NO", "ordre": 1, "score_weight": 10,
         "yes_next_node_id": "q2"},
        {"id": "q2", "question": "Motivation ?", "type": "RATING", "ordre": 2, "score_weight": 10},
    ],
}


class TestScriptRoutes:

    @pytest.mark.asyncio
    async def test_publish_and_list(self, api):
        response = await api.post("/api/scripts", params={"organization_id": "org-api"}, json=SCRIPT)
        assert response.status_code == 200
        script_id = response.json()["script"]["id"]

        listing = await api.get("/api/scripts", params={"organization_id": "org-api"})
        assert listing.json()["count"] == 1

        detail = await api.get(f"/api/scripts/{script_id}")
        assert [n["id"] for n in detail.json()["nodes"]] == ["q1", "q2"]

    @pytest.mark.asyncio
    async def test_publish_invalid_graph(self, api):
        broken = {**SCRIPT, "nodes": [{**SCRIPT["nodes"][0], "yes_next_node_id": "fantome"}]}
        response = await api.post("/api/scripts", params={"organization_id": "org-api"}, json=broken)
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "nodes"

    @pytest.mark.asyncio
    async def test_unknown_script(self, api):
        response = await api.get("/api/scripts/inexistant")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_seed_defaults(self, api):
        first = await api.post("/api/scripts/seed-defaults", json={"organization_id": "org-api", "category": "CFA"})
        second = await api.post("/api/scripts/seed-defaults", json={"organization_id": "org-api"})
        assert first.json()["created"] is True
        assert second.json()["created"] is False


class TestExecutionRoutes:

    @pytest.mark.asyncio
    async def test_full_call(self, api):
        await api.post("/api/scripts", params={"organization_id": "org-api"}, json=SCRIPT)

        start = await api.post("/api/script-executions",
                               json={"lead_id": "lead-1", "user_id": "agent-1", "organization_id": "org-api"})
        assert start.status_code == 200
        state = start.json()["state"]
        assert state["current_node"]["id"] == "q1"

        eid = state["execution_id"]
        await api.post(f"/api/script-executions/{eid}/answers", json={"node_id": "q1", "answer": "oui"})
        done = await api.post(f"/api/script-executions/{eid}/answers", json={"node_id": "q2", "answer": "5"})

        final = done.json()["state"]
        assert final["is_complete"] is True
        assert final["score_percentage"] == 100
        assert final["recommended_action"] == "BOOK_RDV"

        again = await api.post(f"/api/script-executions/{eid}/answers", json={"node_id": "q2", "answer": "5"})
        assert again.status_code == 409

        resumed = await api.get(f"/api/script-executions/{eid}")
        assert resumed.json()["state"]["total_score"] == 20

    @pytest.mark.asyncio
    async def test_start_requires_script_or_organization(self, api):
        response = await api.post("/api/script-executions", json={"lead_id": "lead-1", "user_id": "agent-1"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_execution(self, api):
        response = await api.get("/api/script-executions/inexistante")
        assert response.status_code == 404


class TestRdvRoutes:

    @pytest.mark.asyncio
    async def test_no_show_then_timeline(self, api, make_lead):
        lead = make_lead(status="RDV_PLANIFIE")

        response = await api.post(f"/api/leads/{lead['id']}/rdv/qualify",
                                  json={"honored": False, "absence_reason": "oubli", "performed_by": "agent-1"})
        assert response.status_code == 200
        assert response.json()["new_status"] == "RDV_NON_HONORE"

        timeline = await api.get(f"/api/leads/{lead['id']}/timeline")
        assert timeline.json()["total"] == 1
        assert timeline.json()["activities"][0]["type"] == "RDV_NO_SHOW"

    @pytest.mark.asyncio
    async def test_error_mapping(self, api, make_lead):
        lost = make_lead(status="PERDU")
        planned = make_lead(status="RDV_PLANIFIE")
        no_show = make_lead(status="RDV_NON_HONORE")

        conflict = await api.post(f"/api/leads/{lost['id']}/rdv/non-honore",
                                  json={"action": "relance", "notes": "rappel", "performed_by": "agent-1"})
        invalid = await api.post(f"/api/leads/{planned['id']}/rdv/qualify",
                                 json={"honored": False, "absence_reason": " ", "performed_by": "agent-1"})
        unknown = await api.post(f"/api/leads/{no_show['id']}/rdv/non-honore",
                                 json={"action": "sms", "notes": "rappel", "performed_by": "agent-1"})
        missing = await api.post("/api/leads/inexistant/rdv/qualify",
                                 json={"honored": True, "intent": "abandon", "performed_by": "agent-1"})

        assert conflict.status_code == 409
        assert conflict.json()["detail"]["current_status"] == "PERDU"
        assert invalid.status_code == 400
        assert invalid.json()["detail"]["field"] == "absence_reason"
        assert unknown.status_code == 400
        assert missing.status_code == 404
