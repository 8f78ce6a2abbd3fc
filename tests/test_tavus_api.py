"""
Tavus proxy routes and the local session mirror.
"""

import json
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.models.avatar import InteractiveAvatar, TavusPersona, TavusReplica
from app.models.base import utcnow
from app.models.conversation import ConversationSession, ConversationTranscript

CONVERSATION = {
    "conversation_id": "c123",
    "conversation_name": "New Conversation",
    "conversation_url": "https://tavus.daily.co/c123",
    "status": "active",
}


async def _sessions(session_factory) -> list[ConversationSession]:
    async with session_factory() as s:
        return list((await s.execute(select(ConversationSession))).scalars().all())


@pytest.fixture
async def avatar(session_factory):
    async with session_factory() as s:
        a = InteractiveAvatar(name="Nova", video_url="/media/video/nova.mp4", is_published=True)
        s.add(a)
        await s.commit()
        return a


# ── Conversations ────────────────────────────────────────────────────

async def test_create_conversation_requires_ids(client, tavus_api):
    resp = await client.post("/api/tavus/conversations", json={"replica_id": "r1"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "replica_id and persona_id are required"}
    assert tavus_api.requests == []


async def test_create_conversation_mirrors_session(client, tavus_api, session_factory):
    tavus_api.on("POST", "/conversations", json=CONVERSATION)

    resp = await client.post(
        "/api/tavus/conversations",
        json={"replica_id": "r1", "persona_id": "p1"},
        headers={"User-Agent": "pytest-browser"},
    )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["conversation_id"] == "c123"
    assert body["conversation_url"] == "https://tavus.daily.co/c123"
    assert body["session_id"]

    [sent] = tavus_api.calls("POST", "/conversations")
    assert sent.headers["x-api-key"] == "test-key"
    assert json.loads(sent.content) == {
        "replica_id": "r1",
        "persona_id": "p1",
        "conversation_name": "New Conversation",
    }

    [row] = await _sessions(session_factory)
    assert row.id == body["session_id"]
    assert row.status == "active"
    assert row.replica_id == "r1"
    assert row.user_info["userAgent"] == "pytest-browser"


async def test_create_conversation_survives_mirror_failure(client, tavus_api, session_factory):
    tavus_api.on("POST", "/conversations", json=CONVERSATION)

    # unknown avatar id violates the foreign key
    resp = await client.post(
        "/api/tavus/conversations",
        json={"replica_id": "r1", "persona_id": "p1", "avatar_id": "no-such-avatar"},
    )

    assert resp.status_code == 200
    assert resp.json()["conversation_id"] == "c123"
    assert resp.json()["session_id"] is None
    assert await _sessions(session_factory) == []


async def test_create_conversation_upstream_error(client, tavus_api, session_factory):
    tavus_api.on("POST", "/conversations", status=500, json={"message": "boom"})

    resp = await client.post("/api/tavus/conversations", json={"replica_id": "r1", "persona_id": "p1"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to create conversation"}
    assert await _sessions(session_factory) == []


async def test_get_conversation(client, tavus_api):
    tavus_api.on("GET", "/conversations/c123", json={**CONVERSATION, "status": "ended"})

    resp = await client.get("/api/tavus/conversations/c123")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ended"


async def test_end_conversation_closes_session_once(client, tavus_api, session_factory):
    tavus_api.on("DELETE", "/conversations/c123", status=204)
    async with session_factory() as s:
        s.add(ConversationSession(
            conversation_id="c123",
            conversation_url="https://tavus.daily.co/c123",
            started_at=utcnow() - timedelta(seconds=90),
        ))
        await s.commit()

    first = await client.delete("/api/tavus/conversations/c123")

    assert first.status_code == 200
    assert first.json()["success"] is True
    assert first.json()["message"] == "Conversation ended successfully"
    [row] = await _sessions(session_factory)
    assert row.status == "ended"
    assert 90 <= row.duration_seconds < 100
    ended_at, duration = row.ended_at, row.duration_seconds

    second = await client.delete("/api/tavus/conversations/c123")

    assert second.status_code == 200
    [row] = await _sessions(session_factory)
    assert (row.ended_at, row.duration_seconds) == (ended_at, duration)


async def test_end_conversation_upstream_error_leaves_session_active(client, tavus_api, session_factory):
    tavus_api.on("DELETE", "/conversations/c123", status=502, json={"message": "bad gateway"})
    async with session_factory() as s:
        s.add(ConversationSession(conversation_id="c123", conversation_url="https://tavus.daily.co/c123"))
        await s.commit()

    resp = await client.delete("/api/tavus/conversations/c123")

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to end conversation"}
    [row] = await _sessions(session_factory)
    assert row.status == "active"


@pytest.mark.parametrize("status", [404, 410])
async def test_end_conversation_gone_upstream_marks_session_error(client, tavus_api, session_factory, status):
    tavus_api.on("DELETE", "/conversations/c123", status=status, json={"message": "not found"})
    async with session_factory() as s:
        s.add(ConversationSession(conversation_id="c123", conversation_url="https://tavus.daily.co/c123"))
        await s.commit()

    resp = await client.delete("/api/tavus/conversations/c123")

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to end conversation"}
    [row] = await _sessions(session_factory)
    assert row.status == "error"
    assert row.session_metadata["error"] == f"Tavus returned {status} on end"
    assert row.duration_seconds is None


async def test_transcript_is_mirrored(client, tavus_api, session_factory):
    tavus_api.on("GET", "/conversations/c123/transcript", json={
        "transcript": [
            {"role": "user", "content": "What can you do?"},
            {"role": "assistant", "content": "I can walk you through our studio."},
        ]
    })
    async with session_factory() as s:
        s.add(ConversationSession(conversation_id="c123", conversation_url="https://tavus.daily.co/c123"))
        await s.commit()

    resp = await client.get("/api/tavus/conversations/c123/transcript")

    assert resp.status_code == 200
    body = resp.json()
    assert [e["speaker"] for e in body["entries"]] == ["user", "avatar"]
    assert body["session_id"]

    async with session_factory() as s:
        rows = (await s.execute(select(ConversationTranscript))).scalars().all()
    assert sorted(r.speaker for r in rows) == ["avatar", "user"]


async def test_transcript_with_epoch_timestamps(client, tavus_api, session_factory):
    tavus_api.on("GET", "/conversations/c123/transcript", json={
        "transcript": [
            {"role": "user", "content": "Hello", "timestamp": 1714564801.5},
            {"role": "assistant", "content": "Hi!", "timestamp": 1714564802000},
        ]
    })
    async with session_factory() as s:
        s.add(ConversationSession(conversation_id="c123", conversation_url="https://tavus.daily.co/c123"))
        await s.commit()

    resp = await client.get("/api/tavus/conversations/c123/transcript")

    assert resp.status_code == 200, resp.text
    assert [e["timestamp"] for e in resp.json()["entries"]] == [
        "2024-05-01T12:00:01.500000+00:00",
        "2024-05-01T12:00:02+00:00",
    ]


# ── Replicas / personas ──────────────────────────────────────────────

async def test_list_replicas_passthrough(client, tavus_api):
    tavus_api.on("GET", "/replicas", json={"data": [{"replica_id": "r1", "replica_name": "Nova"}]})

    resp = await client.get("/api/tavus/replicas")

    assert resp.status_code == 200
    assert resp.json() == [{"replica_id": "r1", "replica_name": "Nova"}]


async def test_list_personas_passthrough(client, tavus_api):
    tavus_api.on("GET", "/personas", json={"data": [{"persona_id": "p1"}]})

    resp = await client.get("/api/tavus/personas")

    assert resp.json() == [{"persona_id": "p1"}]


async def test_create_persona_requires_admin(client, tavus_api):
    resp = await client.post("/api/tavus/personas", json={"persona_name": "Guide", "system_prompt": "Be kind"})

    assert resp.status_code == 401
    assert tavus_api.requests == []


async def test_create_persona_requires_prompt(client, admin_headers, tavus_api):
    resp = await client.post("/api/tavus/personas", headers=admin_headers, json={"persona_name": "Guide"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "persona_name and system_prompt are required"}


async def test_create_persona_links_avatar(client, admin_headers, tavus_api, session_factory, avatar):
    tavus_api.on("POST", "/personas", json={"persona_id": "p9", "persona_name": "Guide"})

    resp = await client.post(
        "/api/tavus/personas",
        headers=admin_headers,
        json={"persona_name": "Guide", "system_prompt": "Be kind", "avatar_id": avatar.id},
    )

    assert resp.status_code == 200, resp.text
    assert resp.json()["persona_id"] == "p9"
    [sent] = tavus_api.calls("POST", "/personas")
    assert "avatar_id" not in json.loads(sent.content)

    async with session_factory() as s:
        persona = (await s.execute(select(TavusPersona))).scalar_one()
        linked = await s.get(InteractiveAvatar, avatar.id)
    assert persona.persona_id == "p9"
    assert persona.avatar_id == avatar.id
    assert linked.tavus_persona_id == "p9"


async def test_update_and_delete_persona(client, admin_headers, tavus_api, session_factory, avatar):
    async with session_factory() as s:
        s.add(TavusPersona(persona_id="p9", persona_name="Guide", avatar_id=avatar.id))
        a = await s.get(InteractiveAvatar, avatar.id)
        a.tavus_persona_id = "p9"
        await s.commit()
    tavus_api.on("PATCH", "/personas/p9", status=200)
    tavus_api.on("DELETE", "/personas/p9", status=204)

    patched = await client.patch(
        "/api/tavus/personas/p9", headers=admin_headers, json={"persona_name": "Tour guide"}
    )

    assert patched.status_code == 200, patched.text
    assert patched.json()["persona_name"] == "Tour guide"

    deleted = await client.delete("/api/tavus/personas/p9", headers=admin_headers)

    assert deleted.status_code == 200
    async with session_factory() as s:
        assert (await s.execute(select(TavusPersona))).scalars().all() == []
        assert (await s.get(InteractiveAvatar, avatar.id)).tavus_persona_id is None


async def test_update_persona_rejects_null_name(client, admin_headers, tavus_api, session_factory, avatar):
    async with session_factory() as s:
        s.add(TavusPersona(persona_id="p9", persona_name="Guide", avatar_id=avatar.id))
        await s.commit()
    tavus_api.on("PATCH", "/personas/p9", status=200)

    resp = await client.patch("/api/tavus/personas/p9", headers=admin_headers, json={"persona_name": None})

    assert resp.status_code == 400
    assert resp.json() == {"error": "persona_name cannot be null"}
    assert tavus_api.calls("PATCH", "/personas/p9") == []
    async with session_factory() as s:
        persona = (await s.execute(select(TavusPersona))).scalar_one()
    assert persona.persona_name == "Guide"


async def test_update_persona_with_only_nulls(client, admin_headers, tavus_api):
    resp = await client.patch("/api/tavus/personas/p9", headers=admin_headers, json={"context": None})

    assert resp.status_code == 400
    assert resp.json() == {"error": "No fields to update"}
    assert tavus_api.calls("PATCH", "/personas/p9") == []


async def test_link_replica_enables_avatar(client, admin_headers, tavus_api, session_factory, avatar):
    tavus_api.on("GET", "/replicas/r1", json={"replica_id": "r1", "replica_name": "Nova", "status": "ready"})

    resp = await client.post(
        "/api/tavus/replicas", headers=admin_headers, json={"replica_id": "r1", "avatar_id": avatar.id}
    )

    assert resp.status_code == 200, resp.text
    async with session_factory() as s:
        replica = (await s.execute(select(TavusReplica))).scalar_one()
        linked = await s.get(InteractiveAvatar, avatar.id)
    assert (replica.replica_id, replica.status, replica.avatar_id) == ("r1", "ready", avatar.id)
    assert linked.tavus_replica_id == "r1"
    assert linked.is_tavus_enabled is True


async def test_link_replica_unknown_avatar(client, admin_headers, tavus_api):
    resp = await client.post(
        "/api/tavus/replicas", headers=admin_headers, json={"replica_id": "r1", "avatar_id": "missing"}
    )

    assert resp.status_code == 404
    assert tavus_api.requests == []


async def test_sessions_listing_is_admin_only(client, admin_headers, session_factory):
    async with session_factory() as s:
        s.add(ConversationSession(conversation_id="c1", conversation_url="https://tavus.daily.co/c1"))
        await s.commit()

    assert (await client.get("/api/tavus/sessions")).status_code == 401

    resp = await client.get("/api/tavus/sessions", headers=admin_headers)
    assert resp.status_code == 200
    assert [r["conversation_id"] for r in resp.json()] == ["c1"]
    assert resp.json()[0]["status"] == "active"
