"""
API tests: the proxy route, the generation flow through the app, history views,
and structure rendering.
"""

import pytest
import json
import sys
from pathlib import Path

import httpx
from fastapi.testclient import TestClient

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from database import create_session_factory
from services.generation_proxy import GenerationProxy
from services.history_store import HistoryStore
from services.user_directory import UserDirectory


EMAIL = "chemist@example.com"
UPSTREAM_URL = "https://molmim.test/generate"


@pytest.fixture
def upstream_calls():
    return []


@pytest.fixture
def upstream_reply():
    """Mutable reply the mocked upstream hands out: (status, json body or text)"""
    return {"status": 200, "json": {"molecules": json.dumps([{"sample": " CCO ", "score": 0.8}, {"sample": "", "score": 0.1}])}}


@pytest.fixture
def client(monkeypatch, upstream_calls, upstream_reply):
    def upstream(request):
        upstream_calls.append(request)
        if "json" in upstream_reply:
            return httpx.Response(upstream_reply["status"], json=upstream_reply["json"])
        return httpx.Response(upstream_reply["status"], text=upstream_reply["text"])

    session_factory = create_session_factory("sqlite://")
    store = HistoryStore(session_factory)

    monkeypatch.setattr(main, "history_store", store)
    monkeypatch.setattr(main, "user_directory", UserDirectory(session_factory))
    monkeypatch.setattr(main, "orchestrator", main.build_orchestrator(store))
    monkeypatch.setattr(main, "generation_proxy", GenerationProxy(
        api_key="server-secret",
        upstream_url=UPSTREAM_URL,
        transport=httpx.MockTransport(upstream)
    ))

    return TestClient(main.app)


@pytest.fixture
def signed_in(client):
    response = client.post("/api/users", json={"email": EMAIL, "first_name": "Ada"})
    assert response.status_code == 201
    return {"X-User-Email": EMAIL, "X-Session-Id": "tab-1"}


class TestProxyEndpoint:

    def test_success_relayed(self, client, upstream_calls):
        body = {"smi": "CCO", "num_molecules": 3}
        response = client.post("/api/generate-molecules", json=body)

        assert response.status_code == 200
        assert "molecules" in response.json()
        assert json.loads(upstream_calls[0].content) == body
        assert upstream_calls[0].headers["Authorization"] == "Bearer server-secret"

    def test_upstream_error_status_and_body(self, client, upstream_reply):
        upstream_reply.clear()
        upstream_reply.update({"status": 401, "text": "Unauthorized: bad key"})

        response = client.post("/api/generate-molecules", json={"smi": "CCO"})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized: bad key"}

    def test_unreadable_body_is_500(self, client, upstream_calls):
        response = client.post(
            "/api/generate-molecules",
            content=b"{broken",
            headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 500
        assert "error" in response.json()
        assert upstream_calls == []


class TestGenerationEndpoints:

    def test_generate_signed_in(self, client, signed_in, upstream_calls):
        response = client.post("/api/molecules/generate", json={}, headers=signed_in)

        assert response.status_code == 200
        state = response.json()
        assert [m["structure"] for m in state["molecules"]] == ["CCO"]
        assert state["molecules"][0]["score"] == 0.8
        assert state["loading"] is False
        assert state["alert"] is None
        assert len(state["history"]) == 1

        # Exactly one upstream call carrying the default form
        assert len(upstream_calls) == 1
        body = json.loads(upstream_calls[0].content)
        assert body["algorithm"] == "CMA-ES"
        assert body["num_molecules"] == 10
        assert body["min_similarity"] == 0.3

    def test_generate_anonymous_not_persisted(self, client):
        response = client.post("/api/molecules/generate", json={})

        state = response.json()
        assert len(state["molecules"]) == 1
        assert state["history"] == []
        assert client.get("/api/history").json() == []

    def test_upstream_failure_reported_in_state(self, client, signed_in, upstream_reply):
        upstream_reply.clear()
        upstream_reply.update({"status": 500, "text": "model crashed"})

        response = client.post("/api/molecules/generate", json={}, headers=signed_in)

        assert response.status_code == 200
        state = response.json()
        assert state["molecules"] == []
        assert state["alert"] == "Generation failed. Check server logs."
        assert state["loading"] is False
        assert client.get("/api/history", headers=signed_in).json() == []

    def test_history_listing_and_view(self, client, signed_in, upstream_calls):
        client.post("/api/molecules/generate", json={"smiles": "CCO"}, headers=signed_in)
        client.post("/api/molecules/generate", json={"smiles": "CCN"}, headers=signed_in)

        history = client.get("/api/history", headers=signed_in).json()
        assert [h["request_params"]["smiles"] for h in history] == ["CCO", "CCN"]

        calls_before = len(upstream_calls)
        first = history[0]
        response = client.post(f"/api/history/{first['id']}/view", headers=signed_in)

        assert response.status_code == 200
        assert response.json()["molecules"] == first["generated_molecules"]
        assert len(upstream_calls) == calls_before

    def test_view_unknown_history_entry(self, client, signed_in):
        response = client.post("/api/history/does-not-exist/view", headers=signed_in)
        assert response.status_code == 404

    def test_session_state(self, client, signed_in):
        client.post("/api/molecules/generate", json={}, headers=signed_in)

        state = client.get("/api/session", headers=signed_in).json()

        assert len(state["molecules"]) == 1
        assert len(state["history"]) == 1

    def test_tabs_keep_separate_displayed_state(self, client, signed_in):
        client.post("/api/molecules/generate", json={}, headers=signed_in)
        other_tab = {**signed_in, "X-Session-Id": "tab-2"}

        state = client.get("/api/session", headers=other_tab).json()

        assert state["molecules"] == []
        assert len(state["history"]) == 1

    def test_duplicate_user(self, client, signed_in):
        response = client.post("/api/users", json={"email": EMAIL})
        assert response.status_code == 409


class TestRenderEndpoints:

    def test_svg(self, client):
        response = client.get("/api/render/svg", params={"smiles": "c1ccccc1O"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert "<svg" in response.text

    def test_png(self, client):
        response = client.get("/api/render/png", params={"smiles": "CCO", "size": 150})

        assert response.status_code == 200
        assert response.content[:8] == b"\x89PNG\r\n\x1a\n"

    def test_invalid_smiles(self, client):
        response = client.get("/api/render/svg", params={"smiles": "not-a-molecule(("})
        assert response.status_code == 400

    def test_size_out_of_range_rejected(self, client):
        for size in (-5, 0, 100000):
            assert client.get("/api/render/png", params={"smiles": "CCO", "size": size}).status_code == 422
            assert client.get("/api/render/svg", params={"smiles": "CCO", "size": size}).status_code == 422


class TestServiceEndpoints:

    def test_root(self, client):
        data = client.get("/").json()
        assert data["endpoints"]["proxy"] == "/api/generate-molecules"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["services"]["generation_proxy"] == "ready"
