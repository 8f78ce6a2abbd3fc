"""
Tavus v2 API client.

Conversational video avatars: replicas (trained avatar video models),
personas (system prompt + LLM config) and live conversations.

One TavusClient is created at startup, kept on app.state and injected into
routes. Failures are surfaced as TavusError; nothing is retried.

Docs: https://docs.tavus.io
API:  https://tavusapi.com/v2
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)


class TavusError(Exception):
    """Tavus call failed (not configured, transport error, non-2xx, bad payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# ── Response shapes ──────────────────────────────────────────────────
# Unknown fields are kept so pass-through endpoints return everything Tavus sent.

class _TavusModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class TavusReplicaOut(_TavusModel):
    replica_id: str
    replica_name: Optional[str] = None
    status: Optional[str] = None
    thumbnail_video_url: Optional[str] = None
    training_video_url: Optional[str] = None
    created_at: Optional[str] = None


class TavusPersonaOut(_TavusModel):
    persona_id: str
    persona_name: Optional[str] = None
    system_prompt: Optional[str] = None
    context: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    default_replica_id: Optional[str] = None
    created_at: Optional[str] = None


class TavusConversationOut(_TavusModel):
    conversation_id: str
    conversation_name: Optional[str] = None
    conversation_url: str
    status: Optional[str] = None
    created_at: Optional[str] = None


class TavusClient:
    """Thin async wrapper over the Tavus REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://tavusapi.com/v2",
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=30, write=10, pool=10),
        )
        if not self.api_key:
            logger.warning("TAVUS_API_KEY is not configured")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        if not self._http.is_closed:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, endpoint: str, payload: Optional[dict] = None) -> Any:
        if not self.api_key:
            raise TavusError("Tavus API key is not configured")

        url = f"{self.base_url}{endpoint}"
        logger.info("Tavus: %s %s", method, url)

        try:
            resp = await self._http.request(
                method,
                url,
                json=payload if method in ("POST", "PATCH", "PUT") else None,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error("Tavus request failed: %s %s: %s", method, url, e)
            raise TavusError(f"Tavus request failed: {e}") from e

        if resp.status_code >= 400:
            logger.error("Tavus API error %d: %s", resp.status_code, resp.text[:500])
            raise TavusError(
                f"Tavus API error ({resp.status_code}): {resp.text[:500]}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise TavusError("Tavus returned a non-JSON body") from e

    @staticmethod
    def _parse(model: type[BaseModel], data: Any):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error("Unexpected Tavus payload for %s: %s", model.__name__, e)
            raise TavusError(f"Unexpected Tavus payload: {e.error_count()} error(s)") from e

    # ── Replicas ─────────────────────────────────────────────────────

    async def list_replicas(self) -> list[dict]:
        body = await self._request("GET", "/replicas")
        # v2 list endpoints have used both "replicas" and "data" as the wrapper key
        return (body or {}).get("replicas") or (body or {}).get("data") or []

    async def get_replica(self, replica_id: str) -> TavusReplicaOut:
        body = await self._request("GET", f"/replicas/{replica_id}")
        return self._parse(TavusReplicaOut, body)

    # ── Personas ─────────────────────────────────────────────────────

    async def list_personas(self) -> list[dict]:
        body = await self._request("GET", "/personas")
        return (body or {}).get("personas") or (body or {}).get("data") or []

    async def create_persona(self, data: dict) -> TavusPersonaOut:
        body = await self._request("POST", "/personas", _drop_none(data))
        return self._parse(TavusPersonaOut, body)

    async def update_persona(self, persona_id: str, data: dict) -> TavusPersonaOut:
        body = await self._request("PATCH", f"/personas/{persona_id}", _drop_none(data))
        if not body:
            # PATCH may answer 304/empty; fall back to the submitted values
            body = {"persona_id": persona_id, **_drop_none(data)}
        return self._parse(TavusPersonaOut, body)

    async def delete_persona(self, persona_id: str) -> None:
        await self._request("DELETE", f"/personas/{persona_id}")

    # ── Conversations ────────────────────────────────────────────────

    async def create_conversation(
        self,
        replica_id: str,
        persona_id: str,
        conversation_name: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> TavusConversationOut:
        payload = _drop_none({
            "replica_id": replica_id,
            "persona_id": persona_id,
            "conversation_name": conversation_name,
            "callback_url": callback_url,
        })
        body = await self._request("POST", "/conversations", payload)
        conversation = self._parse(TavusConversationOut, body)
        logger.info("Tavus conversation created: %s", conversation.conversation_id)
        return conversation

    async def get_conversation(self, conversation_id: str) -> TavusConversationOut:
        body = await self._request("GET", f"/conversations/{conversation_id}")
        return self._parse(TavusConversationOut, body)

    async def end_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")
        logger.info("Tavus conversation ended: %s", conversation_id)

    async def get_transcript(self, conversation_id: str) -> Any:
        return await self._request("GET", f"/conversations/{conversation_id}/transcript")


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}
