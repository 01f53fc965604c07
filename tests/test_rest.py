"""Integration tests for REST API endpoints.

Uses httpx AsyncClient with ASGITransport, a ScriptedClient in place of
the reasoning service, and the SQLite db fixture for quotes and profiles.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from quotecat.api.rest import create_app
from quotecat.storage.profiles import SqlProfileStore
from quotecat.storage.quotes import SqlQuoteStore
from quotecat.wizard.controller import ConversationLoopController
from quotecat.wizard.errors import ReasoningError
from quotecat.wizard.registry import SessionRegistry
from tests.conftest import ScriptedClient, reply

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def scripted() -> ScriptedClient:
    return ScriptedClient()


@pytest_asyncio.fixture
async def profiles(db):
    store = SqlProfileStore(db)
    await store.upsert("pro", tier="premium", default_labor_rate=70)
    await store.upsert("basic", tier="free")
    return store


@pytest_asyncio.fixture
async def client(db, profiles, settings, catalog, scripted):
    controller = ConversationLoopController(scripted, catalog, settings)
    registry = SessionRegistry(
        controller,
        lambda user_id: SqlQuoteStore(db, user_id=user_id),
        profiles,
        profiles,
    )
    app = create_app(registry, catalog, database=db)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _chat_session(client: AsyncClient) -> str:
    resp = await client.post("/wizard/sessions", json={"user_id": "pro"})
    session_id = resp.json()["session_id"]
    await client.post(f"/wizard/sessions/{session_id}/start")
    return session_id


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestSessions:
    @pytest.mark.asyncio
    async def test_open_premium_user(self, client):
        resp = await client.post("/wizard/sessions", json={"user_id": "pro"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["screen"] == "intro"
        assert data["messages"] == []

    @pytest.mark.asyncio
    async def test_open_free_user_is_upgrade(self, client):
        resp = await client.post("/wizard/sessions", json={"user_id": "basic"})
        session_id = resp.json()["session_id"]
        assert resp.json()["screen"] == "upgrade"

        resp = await client.post(f"/wizard/sessions/{session_id}/start")
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_open_requires_user_id(self, client):
        resp = await client.post("/wizard/sessions", json={})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_session(self, client):
        assert (await client.get("/wizard/sessions/nope")).status_code == 404
        assert (await client.delete("/wizard/sessions/nope")).status_code == 404

    @pytest.mark.asyncio
    async def test_start_shows_greeting(self, client):
        session_id = await _chat_session(client)
        data = (await client.get(f"/wizard/sessions/{session_id}")).json()
        assert data["screen"] == "chat"
        assert data["messages"][0]["role"] == "assistant"
        assert data["quick_replies"]

    @pytest.mark.asyncio
    async def test_message_before_start_conflicts(self, client, scripted):
        resp = await client.post("/wizard/sessions", json={"user_id": "pro"})
        session_id = resp.json()["session_id"]
        resp = await client.post(f"/wizard/sessions/{session_id}/messages", json={"text": "hi"})
        assert resp.status_code == 409
        assert scripted.calls == []


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


class TestMessages:
    @pytest.mark.asyncio
    async def test_turn_applies_tools(self, client, scripted):
        scripted.replies.append(reply(
            "Added it.",
            {"type": "addItem", "productId": "p-grout", "productName": "Sanded Grout", "qty": 2, "unitPrice": 12},
        ))
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/messages", json={"text": "2 bags of grout"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["reply"] == "Added it."
        assert data["applied"] == ["Added 2x Sanded Grout"]
        assert data["session"]["draft"]["items"][0]["line_total"] == 24
        # The user's defaults are forwarded to the reasoning service
        assert scripted.calls[0][2].default_labor_rate == 70

    @pytest.mark.asyncio
    async def test_reasoning_failure_is_a_normal_reply(self, client, scripted):
        scripted.replies.append(ReasoningError("service unavailable"))
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/messages", json={"text": "hi"})
        assert resp.status_code == 200
        assert resp.json()["failed"] is True

    @pytest.mark.asyncio
    async def test_missing_text(self, client):
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/messages", json={})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_speech_then_send_buffer(self, client, scripted):
        scripted.replies.append(reply("Got it."))
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/speech", json={"text": "ten by twelve"})
        assert resp.status_code == 202
        assert (await client.get(f"/wizard/sessions/{session_id}")).json()["input"] == "ten by twelve"

        resp = await client.post(f"/wizard/sessions/{session_id}/messages", json={})
        assert resp.status_code == 200
        assert scripted.calls[0][0][-1].display_text == "ten by twelve"

    @pytest.mark.asyncio
    async def test_busy_send_keeps_composed_input(self, client, scripted):
        scripted.replies.append(reply("First."))
        started, gate = asyncio.Event(), asyncio.Event()

        async def wait_for_gate():
            started.set()
            await gate.wait()

        scripted.before_reply = wait_for_gate
        session_id = await _chat_session(client)
        await client.post(f"/wizard/sessions/{session_id}/speech", json={"text": "ten by twelve"})

        first = asyncio.create_task(
            client.post(f"/wizard/sessions/{session_id}/messages", json={"text": "tile"})
        )
        await started.wait()
        resp = await client.post(f"/wizard/sessions/{session_id}/messages", json={})
        assert resp.status_code == 409

        gate.set()
        assert (await first).status_code == 200
        assert (await client.get(f"/wizard/sessions/{session_id}")).json()["input"] == "ten by twelve"

    @pytest.mark.asyncio
    async def test_selection_sends_one_turn(self, client, scripted):
        scripted.replies.append(reply("Added both."))
        session_id = await _chat_session(client)
        resp = await client.post(
            f"/wizard/sessions/{session_id}/selection",
            json={"items": [
                {"id": "p-faucet", "name": "Faucet", "price": 89, "unit": "ea", "qty": 2},
                {"id": "p-toilet", "name": "Toilet", "price": 219},
            ]},
        )
        assert resp.status_code == 200
        assert len(scripted.calls) == 1
        api_text = scripted.calls[0][0][-1].outbound_text
        selected = json.loads(api_text.replace("ADD_SELECTED:", ""))
        assert [(s["id"], s["unit"], s["qty"]) for s in selected] == [
            ("p-faucet", "ea", 2),
            ("p-toilet", "", 1),
        ]

    @pytest.mark.asyncio
    async def test_empty_selection(self, client):
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/selection", json={})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_selection_rejects_non_numeric_qty(self, client, scripted):
        session_id = await _chat_session(client)
        resp = await client.post(
            f"/wizard/sessions/{session_id}/selection",
            json={"items": [{"id": "p-faucet", "name": "Faucet", "price": 89, "qty": "two"}]},
        )
        assert resp.status_code == 400
        assert scripted.calls == []

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, client):
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/cancel")
        assert resp.json() == {"cancelled": False}


# ---------------------------------------------------------------------------
# Draft edits, commit, reset
# ---------------------------------------------------------------------------


class TestDraft:
    @pytest.mark.asyncio
    async def test_edit_commit_and_reset(self, client, scripted, db):
        scripted.replies.append(reply(
            "Done.",
            {"type": "setQuoteName", "name": "Hall Bath"},
            {"type": "addItem", "productName": "Tile", "qty": 10, "unitPrice": 2},
            {"type": "addItem", "productName": "Grout", "qty": 1, "unitPrice": 12},
        ))
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/messages", json={"text": "go"})
        tile_id, grout_id = (i["id"] for i in resp.json()["session"]["draft"]["items"])

        resp = await client.patch(f"/wizard/sessions/{session_id}/items/{tile_id}", json={"qty": 20})
        assert resp.json()["items"][0]["qty"] == 20
        resp = await client.delete(f"/wizard/sessions/{session_id}/items/{grout_id}")
        assert [i["name"] for i in resp.json()["items"]] == ["Tile"]

        resp = await client.post(f"/wizard/sessions/{session_id}/commit")
        assert resp.status_code == 201
        saved = await SqlQuoteStore(db).get(resp.json()["quote_id"])
        assert saved["name"] == "Hall Bath"
        assert saved["items"][0]["qty"] == 20

        resp = await client.post(f"/wizard/sessions/{session_id}/reset")
        assert resp.json()["screen"] == "intro"
        assert resp.json()["draft"]["items"] == []

    @pytest.mark.asyncio
    async def test_commit_empty_draft(self, client):
        session_id = await _chat_session(client)
        resp = await client.post(f"/wizard/sessions/{session_id}/commit")
        assert resp.status_code == 400
        assert resp.json()["type"] == "EmptyDraftError"

    @pytest.mark.asyncio
    async def test_change_quantity_requires_number(self, client):
        session_id = await _chat_session(client)
        resp = await client.patch(f"/wizard/sessions/{session_id}/items/x", json={"qty": "lots"})
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Catalog and health
# ---------------------------------------------------------------------------


class TestCatalogAndHealth:
    @pytest.mark.asyncio
    async def test_catalog_search(self, client):
        resp = await client.get("/catalog/search", params={"q": "grout"})
        assert resp.status_code == 200
        assert "Sanded Grout (id: p-grout)" in resp.json()["result"]

    @pytest.mark.asyncio
    async def test_catalog_search_requires_query(self, client):
        assert (await client.get("/catalog/search")).status_code == 400
        resp = await client.get("/catalog/search", params={"q": "tile", "limit": "many"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["catalog_products"] == 6
