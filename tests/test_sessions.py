"""
Refresh-token rotation: single use, expiry, logout and reset revocation.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationFailed
from app.core.security import decode_access_token, hash_token
from app.models.refresh_token import RefreshToken
from app.services.sessions import (issue_tokens, revoke_all_refresh_tokens,
                                   rotate_refresh_token)
from conftest import PASSWORD, cookie_header, refresh_cookie


async def _login(client: AsyncClient, identifier: str = "customer@example.com"):
    response = await client.post(
        "/api/v1/auth/login", json={"identifier": identifier, "password": PASSWORD}
    )
    assert response.status_code == 200, response.text
    return response


@pytest.mark.asyncio
async def test_issue_tokens_stores_only_the_hash(db_session: AsyncSession, customer):
    tokens = issue_tokens(db_session, customer)
    await db_session.commit()

    rows = (await db_session.execute(select(RefreshToken))).scalars().all()
    assert len(rows) == 1
    assert rows[0].token_hash == hash_token(tokens.refresh_token)
    assert rows[0].token_hash != tokens.refresh_token

    payload = decode_access_token(tokens.access_token)
    assert payload["sub"] == str(customer.id)
    assert payload["role"] == "CUSTOMER"
    assert payload["type"] == "access"


@pytest.mark.asyncio
async def test_rotated_token_cannot_be_reused(db_session: AsyncSession, customer):
    first = issue_tokens(db_session, customer)
    await db_session.commit()

    second = await rotate_refresh_token(db_session, first.refresh_token)
    assert second.refresh_token != first.refresh_token

    with pytest.raises(AuthenticationFailed):
        await rotate_refresh_token(db_session, first.refresh_token)

    # the fresh one still works exactly once
    third = await rotate_refresh_token(db_session, second.refresh_token)
    assert third.user.id == customer.id
    with pytest.raises(AuthenticationFailed):
        await rotate_refresh_token(db_session, second.refresh_token)


@pytest.mark.asyncio
async def test_expired_token_is_deleted_and_rejected(db_session: AsyncSession, customer):
    tokens = issue_tokens(db_session, customer)
    await db_session.commit()
    row = (await db_session.execute(select(RefreshToken))).scalar_one()
    row.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    await db_session.commit()

    with pytest.raises(AuthenticationFailed):
        await rotate_refresh_token(db_session, tokens.refresh_token)

    remaining = (await db_session.execute(select(RefreshToken))).scalars().all()
    assert remaining == []


@pytest.mark.asyncio
async def test_revoke_all(db_session: AsyncSession, customer):
    issue_tokens(db_session, customer)
    issue_tokens(db_session, customer)
    await db_session.commit()

    assert await revoke_all_refresh_tokens(db_session, customer.id) == 2
    await db_session.commit()


# ── Over HTTP ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_refresh_cookie_attributes(async_client: AsyncClient, customer):
    response = await _login(async_client)
    header = next(
        h for h in response.headers.get_list("set-cookie") if h.startswith("refresh_token=")
    )
    lowered = header.lower()
    assert "httponly" in lowered
    assert "secure" in lowered
    assert "samesite=strict" in lowered
    assert "refresh_token" not in response.json()


@pytest.mark.asyncio
async def test_refresh_endpoint_rotates(async_client: AsyncClient, customer):
    login = await _login(async_client)
    original = refresh_cookie(login)

    rotated = await async_client.post("/api/v1/auth/refresh", headers=cookie_header(original))
    assert rotated.status_code == 200
    assert rotated.json()["access_token"]
    fresh = refresh_cookie(rotated)
    assert fresh and fresh != original

    replay = await async_client.post("/api/v1/auth/refresh", headers=cookie_header(original))
    assert replay.status_code == 401
    assert replay.json()["success"] is False

    again = await async_client.post("/api/v1/auth/refresh", headers=cookie_header(fresh))
    assert again.status_code == 200


@pytest.mark.asyncio
async def test_refresh_without_cookie(async_client: AsyncClient):
    response = await async_client.post("/api/v1/auth/refresh")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_token(async_client: AsyncClient, customer):
    login = await _login(async_client)
    token = refresh_cookie(login)

    out = await async_client.post("/api/v1/auth/logout", headers=cookie_header(token))
    assert out.status_code == 200

    response = await async_client.post("/api/v1/auth/refresh", headers=cookie_header(token))
    assert response.status_code == 401
