"""
Server-side relay to the MolMIM generation service.

The request body is forwarded untouched with the server-held bearer key, so the
key never reaches the browser. Upstream responses and errors are relayed as-is.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from config import settings


@dataclass
class ProxyResult:
    """Status code and JSON body to hand back to the caller."""
    status_code: int
    body: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class GenerationProxy:
    """Forwards generation requests to the upstream model endpoint"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        upstream_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key if api_key is not None else settings.nvidia_api_key
        self.upstream_url = upstream_url or settings.molmim_url
        self.timeout = timeout or settings.request_timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def forward(self, body: Any) -> ProxyResult:
        """Relay a generation request body and return the upstream outcome."""
        if not self.api_key:
            logger.error("Generation proxy called without an upstream API key configured")
            return ProxyResult(500, {"error": "Generation service credential is not configured"})

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.upstream_url, json=body, headers=self._headers())

                if not response.is_success:
                    logger.warning(f"MolMIM request failed: {response.status_code}")
                    return ProxyResult(response.status_code, {"error": response.text})

                return ProxyResult(200, response.json())

        except Exception as e:
            logger.error(f"Generation proxy error: {e}")
            return ProxyResult(500, {"error": str(e)})
