"""
Tests for the MolMIM relay
"""

import pytest
import json
import sys
from pathlib import Path

import httpx

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.generation_proxy import GenerationProxy


UPSTREAM_URL = "https://molmim.test/v1/biology/nvidia/molmim/generate"

REQUEST_BODY = {
    "algorithm": "CMA-ES",
    "num_molecules": 10,
    "property_name": "QED",
    "minimize": False,
    "min_similarity": 0.3,
    "particles": 30,
    "iterations": 10,
    "smi": "CCO"
}


class TestGenerationProxy:

    @pytest.fixture
    def seen(self):
        return []

    def make_proxy(self, handler, api_key="server-secret"):
        return GenerationProxy(
            api_key=api_key,
            upstream_url=UPSTREAM_URL,
            transport=httpx.MockTransport(handler)
        )

    @pytest.mark.asyncio
    async def test_forwards_body_with_bearer_credential(self, seen):
        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"molecules": "[]"})

        result = await self.make_proxy(handler).forward(REQUEST_BODY)

        assert result.ok
        assert result.status_code == 200
        assert result.body == {"molecules": "[]"}

        request = seen[0]
        assert str(request.url) == UPSTREAM_URL
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer server-secret"
        assert request.headers["Accept"] == "application/json"
        assert json.loads(request.content) == REQUEST_BODY

    @pytest.mark.asyncio
    async def test_body_is_not_transformed(self, seen):
        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"molecules": "[]"})

        odd_body = {"smi": "", "num_molecules": None, "extra": [1, 2, 3]}
        await self.make_proxy(handler).forward(odd_body)

        assert seen[0] == odd_body

    @pytest.mark.asyncio
    async def test_upstream_error_relayed_verbatim(self):
        def handler(request):
            return httpx.Response(422, text="Invalid SMILES string")

        result = await self.make_proxy(handler).forward(REQUEST_BODY)

        assert not result.ok
        assert result.status_code == 422
        assert result.body == {"error": "Invalid SMILES string"}

    @pytest.mark.asyncio
    async def test_upstream_called_once_on_error(self, seen):
        def handler(request):
            seen.append(request)
            return httpx.Response(503, text="busy")

        await self.make_proxy(handler).forward(REQUEST_BODY)

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_network_failure_is_generic_500(self):
        def handler(request):
            raise httpx.ConnectError("name resolution failed", request=request)

        result = await self.make_proxy(handler).forward(REQUEST_BODY)

        assert result.status_code == 500
        assert "name resolution failed" in result.body["error"]

    @pytest.mark.asyncio
    async def test_non_json_success_body_is_500(self):
        def handler(request):
            return httpx.Response(200, text="not json")

        result = await self.make_proxy(handler).forward(REQUEST_BODY)

        assert result.status_code == 500
        assert "error" in result.body

    @pytest.mark.asyncio
    async def test_missing_credential_skips_upstream(self, seen):
        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        result = await self.make_proxy(handler, api_key="").forward(REQUEST_BODY)

        assert result.status_code == 500
        assert seen == []
