"""
Signup API tests: email availability, emailed code and user creation.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from qshare.core.database import get_session
from qshare.core.errors import CollaboratorError
from qshare.main import create_app
from qshare.models.base import utcnow
from qshare.schemas.auth import PendingSignup
from qshare.services import users
from tests.factories import make_user

SIGNUP = {
    "full_name": "Ada Lovelace",
    "email": "Ada@Example.com",
    "user_id": "web-42",
    "platform": "web",
}


@pytest.fixture
async def client(settings, deps, session_factory):
    dispatcher = MagicMock()
    dispatcher.deps = deps
    app = create_app(settings, dispatcher=dispatcher)

    async def session_override():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = session_override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _initiate(client):
    response = await client.post("/api/auth/signup/initiate", json=SIGNUP)
    assert response.status_code == 200
    return response


# ---------------------------------------------------------------------------
# check-email
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_check_email_reports_registered_address(client, session_factory):
    await make_user(session_factory, "101", "taken@example.com")

    taken = await client.get("/api/auth/check-email", params={"email": "TAKEN@example.com"})
    free = await client.get("/api/auth/check-email", params={"email": "free@example.com"})
    assert taken.json() == {"exists": True}
    assert free.json() == {"exists": False}


@pytest.mark.asyncio
async def test_check_email_requires_address(client):
    response = await client.get("/api/auth/check-email")
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# signup/initiate
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_initiate_emails_code_and_holds_signup(client, deps, session_factory):
    response = await _initiate(client)
    assert response.json() == {"message": "Verification code sent to your email."}

    first_name, email, code = deps.email.send_code.await_args.args
    assert first_name == "Ada"
    assert email == "ada@example.com"
    async with session_factory() as session:
        pending = await users.get_pending_signup(session, "ada@example.com")
    assert pending.code == code
    assert pending.platform == "web"
    assert pending.user_id == "web-42"


@pytest.mark.asyncio
async def test_initiate_rejects_email_in_use(client, deps, session_factory):
    await make_user(session_factory, "101", "ada@example.com")
    response = await client.post("/api/auth/signup/initiate", json=SIGNUP)
    assert response.status_code == 409
    assert response.json()["detail"] == "This email address is already in use."
    deps.email.send_code.assert_not_awaited()


@pytest.mark.asyncio
async def test_initiate_rejects_registered_account(client, session_factory):
    await make_user(session_factory, "101", "other@example.com")
    response = await client.post("/api/auth/signup/initiate", json={**SIGNUP, "user_id": "101"})
    assert response.status_code == 409


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["not-an-email", "ada@site.invalid"])
async def test_initiate_rejects_invalid_email(client, deps, email):
    response = await client.post("/api/auth/signup/initiate", json={**SIGNUP, "email": email})
    assert response.status_code == 422
    deps.email.send_code.assert_not_awaited()


@pytest.mark.asyncio
async def test_initiate_reports_email_failure(client, deps, session_factory):
    deps.email.send_code.side_effect = CollaboratorError("email", "HTTP 503")
    response = await client.post("/api/auth/signup/initiate", json=SIGNUP)
    assert response.status_code == 502
    async with session_factory() as session:
        assert await users.get_pending_signup(session, "ada@example.com") is None


# ---------------------------------------------------------------------------
# signup/complete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_creates_verified_user(client, deps, session_factory):
    await _initiate(client)
    code = deps.email.send_code.await_args.args[2]

    response = await client.post(
        "/api/auth/signup/complete", json={"email": "ada@example.com", "code": code}
    )
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Registration successful."
    assert body["user"]["user_id"] == "web-42"
    assert body["user"]["platform"] == "web"
    assert body["user"]["verified"] is True

    async with session_factory() as session:
        user = await users.get_user(session, "web-42")
        assert user.email == "ada@example.com"
        assert user.chat_id is None
        assert await users.get_pending_signup(session, "ada@example.com") is None


@pytest.mark.asyncio
async def test_complete_with_wrong_code(client, deps, session_factory):
    await _initiate(client)
    code = deps.email.send_code.await_args.args[2]
    wrong = "000000" if code != "000000" else "111111"

    response = await client.post(
        "/api/auth/signup/complete", json={"email": "ada@example.com", "code": wrong}
    )
    assert response.status_code == 400
    async with session_factory() as session:
        assert await users.get_user(session, "web-42") is None
        assert await users.get_pending_signup(session, "ada@example.com") is not None


@pytest.mark.asyncio
async def test_complete_without_initiate(client):
    response = await client.post(
        "/api/auth/signup/complete", json={"email": "ada@example.com", "code": "123456"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_complete_after_expiry(client, session_factory):
    async with session_factory() as session:
        await users.save_pending_signup(
            session,
            PendingSignup(
                user_id="web-42",
                full_name="Ada Lovelace",
                email="ada@example.com",
                platform="web",
                code="123456",
                expires_at=utcnow() - timedelta(seconds=1),
            ),
        )
        await session.commit()

    response = await client.post(
        "/api/auth/signup/complete", json={"email": "ada@example.com", "code": "123456"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_complete_when_email_was_taken_meanwhile(client, deps, session_factory):
    await _initiate(client)
    code = deps.email.send_code.await_args.args[2]
    await make_user(session_factory, "101", "ada@example.com")

    response = await client.post(
        "/api/auth/signup/complete", json={"email": "ada@example.com", "code": code}
    )
    assert response.status_code == 409
    async with session_factory() as session:
        assert await users.get_user(session, "web-42") is None
