from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Protocol

import httpx

from .config import Settings
from .utils import parse_json

logger = logging.getLogger("productpal.agent")


class AgentGatewayError(Exception):
    """Raised when the hosted agent cannot produce a reply."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AgentGateway(Protocol):
    """Asynchronous boundary to the hosted agent."""

    async def invoke(self, message: str, agent_id: str, options: Dict[str, str]) -> Dict[str, Any]:
        ...


def build_envelope(body: str) -> Dict[str, Any]:
    """Purpose: Wrap an HTTP response body into the reply envelope the normalizer expects.
    Inputs/Outputs: Input is the raw body text; output is {success, response, raw_response}.
    Side Effects / State: None; pure function.
    Dependencies: Uses parse_json.
    Failure Modes: None. A body that already is an envelope passes through; any other
        JSON object becomes `response`; non-JSON bodies yield an empty `response` so the
        normalizer falls back to `raw_response`.
    If Removed: Gateway replies reach the normalizer in an unpredictable shape.
    Testing Notes: Envelope pass-through, bare object, and plain-text bodies.
    """
    # Keep the undecoded body around for the normalizer's last-resort probes.
    parsed_ok, data = parse_json(body)
    if parsed_ok and isinstance(data, dict) and "success" in data:
        envelope = dict(data)
        envelope.setdefault("raw_response", body)
        return envelope
    return {
        "success": True,
        "response": data if parsed_ok and isinstance(data, dict) else {},
        "raw_response": body,
    }


class HttpAgentGateway:
    """Thin httpx wrapper that posts user text to the hosted agent endpoint."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        """Purpose: Configure endpoint, credentials, and timeout for agent calls.
        Inputs/Outputs: Inputs are Settings and an optional shared AsyncClient; no return.
        Side Effects / State: Stores configuration; no network activity.
        Dependencies: Uses httpx and Settings from config.
        Failure Modes: None at init.
        If Removed: The flow controller has no way to reach the agent.
        Testing Notes: Inject an AsyncClient with httpx.MockTransport.
        """
        # Without an injected client one is created lazily and reused across calls.
        self._settings = settings
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.agent_api_key:
            headers["x-api-key"] = self._settings.agent_api_key
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.agent_timeout)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def invoke(self, message: str, agent_id: str, options: Dict[str, str]) -> Dict[str, Any]:
        """Purpose: Send one user message to the agent and return its reply envelope.
        Inputs/Outputs: Inputs are message text, agent id, and options (session_id);
            output is the reply envelope dict.
        Side Effects / State: Performs an HTTP POST; logs status and latency.
        Dependencies: Uses httpx.AsyncClient and build_envelope.
        Failure Modes: Transport errors, timeouts, and HTTP >= 400 raise AgentGatewayError.
        If Removed: No turn can ever succeed.
        Testing Notes: Verify payload fields and error mapping with a mock transport.
        """
        # Post, then map transport and status failures onto AgentGatewayError.
        payload = {"message": message, "agent_id": agent_id, **options}
        client = await self._get_client()
        started = time.perf_counter()
        try:
            response = await client.post(
                self._settings.agent_api_url, json=payload, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            raise AgentGatewayError(f"Agent request failed: {exc}") from exc

        logger.info(
            "agent session=%s status=%s latency_ms=%d",
            options.get("session_id"),
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        if response.status_code >= 400:
            raise AgentGatewayError(
                f"Agent returned HTTP {response.status_code}", status_code=response.status_code
            )
        return build_envelope(response.text)
