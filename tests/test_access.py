"""
Authorization gate: membership lookup, property id extraction and the
property-scoped HTTP guard.
"""

import json
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from app.core.exceptions import Forbidden, ValidationError
from app.services.access import (AuthorizationGate, Identity, RequireAbility,
                                 default_sources, grant_membership, has_access,
                                 parse_property_id)


def _request(
    path_params: dict | None = None,
    query: str = "",
    body: dict | None = None,
    method: str = "POST",
) -> Request:
    payload = json.dumps(body).encode() if body is not None else b""
    scope = {
        "type": "http",
        "method": method,
        "path": "/",
        "query_string": query.encode(),
        "headers": [(b"content-type", b"application/json")],
        "path_params": path_params or {},
    }

    async def receive():
        return {"type": "http.request", "body": payload, "more_body": False}

    return Request(scope, receive)


class _NoStore:
    """Stands in for a session that must never be queried."""

    async def execute(self, *args, **kwargs):
        raise AssertionError("store was queried")


# ── Membership ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_has_access_only_for_granted_pair(
    db_session: AsyncSession, create_user, create_property
):
    hotel = await create_property()
    alice = await create_user(email="alice@x.com", properties=(hotel.id,))
    bob = await create_user(email="bob@x.com")

    assert await has_access(db_session, alice.id, hotel.id) is True
    assert await has_access(db_session, bob.id, hotel.id) is False
    assert await has_access(db_session, alice.id, uuid.uuid4()) is False


@pytest.mark.asyncio
async def test_grant_membership_is_idempotent(
    db_session: AsyncSession, create_user, create_property
):
    hotel = await create_property()
    user = await create_user()

    await grant_membership(db_session, user.id, hotel.id)
    await grant_membership(db_session, user.id, hotel.id)
    await db_session.commit()

    assert await has_access(db_session, user.id, hotel.id) is True


@pytest.mark.asyncio
async def test_identity_from_claims_ignores_token_property_list(
    db_session: AsyncSession, create_user, create_property
):
    hotel = await create_property()
    user = await create_user()
    identity = Identity.from_claims(
        {
            "sub": str(user.id),
            "email": user.email,
            "abilities": ["checkin"],
            "properties": [str(hotel.id)],
        }
    )
    assert identity == Identity(
        user_id=user.id, email=user.email, abilities=frozenset({"checkin"})
    )

    # A stale or forged property list in the token grants nothing
    with pytest.raises(Forbidden):
        await AuthorizationGate().authorize(db_session, identity, str(hotel.id))


# ── Property id parsing / extraction ────────────────────────────────
@pytest.mark.parametrize(
    "raw",
    [
        "not-a-uuid",
        "12345",
        "0b8e5c2a-4a8f-0c3d-9b1e-2f4a6c8e0d1b",  # version nibble 0
        "0b8e5c2a-4a8f-4c3d-7b1e-2f4a6c8e0d1b",  # variant nibble 7
        "0b8e5c2a4a8f4c3d9b1e2f4a6c8e0d1b",
    ],
)
def test_parse_property_id_rejects_malformed(raw):
    with pytest.raises(ValidationError) as exc:
        parse_property_id(raw)
    assert exc.value.code == "BAD_PROPERTY_ID"


def test_parse_property_id_accepts_any_case():
    value = uuid.uuid4()
    assert parse_property_id(str(value).upper()) == value


@pytest.mark.asyncio
async def test_extraction_prefers_path_then_query_then_body():
    gate = AuthorizationGate(sources=default_sources())
    p, q, b = "path-id", "query-id", "body-id"

    assert await gate.extract(
        _request({"propertyId": p}, f"propertyId={q}", {"property_id": b})
    ) == p
    assert await gate.extract(_request({}, f"propertyId={q}", {"property_id": b})) == q
    assert await gate.extract(_request({}, "", {"property_id": b})) == b
    assert await gate.extract(_request({}, "", {"other": 1})) is None


@pytest.mark.asyncio
async def test_body_is_ignored_for_get():
    gate = AuthorizationGate()
    assert await gate.extract(_request(body={"property_id": "x"}, method="GET")) is None


# ── Gate decisions ──────────────────────────────────────────────────
@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [None, ""])
async def test_missing_property_id(raw):
    identity = Identity(user_id=uuid.uuid4(), email="a@x.com")
    with pytest.raises(ValidationError) as exc:
        await AuthorizationGate().authorize(_NoStore(), identity, raw)
    assert exc.value.code == "PROPERTY_ID_REQUIRED"


@pytest.mark.asyncio
async def test_malformed_property_id_never_reaches_store():
    identity = Identity(user_id=uuid.uuid4(), email="a@x.com")
    with pytest.raises(ValidationError) as exc:
        await AuthorizationGate().authorize(_NoStore(), identity, "../etc/passwd")
    assert exc.value.code == "BAD_PROPERTY_ID"


@pytest.mark.asyncio
async def test_gate_forbids_non_members(db_session: AsyncSession, create_user, create_property):
    hotel = await create_property()
    user = await create_user()
    identity = Identity(user_id=user.id, email=user.email)

    with pytest.raises(Forbidden):
        await AuthorizationGate().authorize(db_session, identity, str(hotel.id))


@pytest.mark.asyncio
async def test_ability_policy_runs_after_membership(
    db_session: AsyncSession, create_user, create_property
):
    hotel = await create_property()
    user = await create_user(properties=(hotel.id,))
    gate = AuthorizationGate(policies=[RequireAbility("room_type.create")])

    plain = Identity(user_id=user.id, email=user.email)
    with pytest.raises(Forbidden):
        await gate.authorize(db_session, plain, str(hotel.id))

    able = Identity(user_id=user.id, email=user.email, abilities=frozenset({"room_type.create"}))
    assert await gate.authorize(db_session, able, str(hotel.id)) == hotel.id


# ── HTTP guard ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_member_of_p1_forbidden_on_p2(
    async_client: AsyncClient, create_user, create_property, auth_headers
):
    p1 = await create_property("P1")
    p2 = await create_property("P2")
    user = await create_user(properties=(p1.id,))
    headers = auth_headers(user)

    ok = await async_client.get(f"/api/properties/{p1.id}/room-classes", headers=headers)
    assert ok.status_code == 200

    resp = await async_client.get(f"/api/properties/{p2.id}/room-classes", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_membership_of_one_user_does_not_leak(
    async_client: AsyncClient, create_user, create_property, auth_headers
):
    hotel = await create_property()
    await create_user(email="owner@x.com", properties=(hotel.id,))
    other = await create_user(email="other@x.com")

    resp = await async_client.get(f"/api/properties/{hotel.id}", headers=auth_headers(other))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_bad_property_id_in_path(async_client: AsyncClient, create_user, auth_headers):
    user = await create_user()
    resp = await async_client.get(
        "/api/properties/not-a-uuid/room-classes", headers=auth_headers(user)
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "BAD_PROPERTY_ID"


@pytest.mark.asyncio
async def test_property_id_required_on_flat_route(
    async_client: AsyncClient, create_user, auth_headers
):
    user = await create_user()
    resp = await async_client.get("/api/room-classes", headers=auth_headers(user))
    assert resp.status_code == 400
    assert resp.json()["error"] == "PROPERTY_ID_REQUIRED"


@pytest.mark.asyncio
async def test_property_scoped_route_requires_token(async_client: AsyncClient, create_property):
    hotel = await create_property()
    resp = await async_client.get(f"/api/properties/{hotel.id}/room-classes")
    assert resp.status_code == 401
