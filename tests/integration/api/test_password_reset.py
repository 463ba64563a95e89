"""
Integration tests for the forgot/reset password flow.

WHY: Verifies end to end that:
1. The forgot-password response never reveals whether an account exists
2. The emailed token sets a new password exactly once
3. Expired or unknown tokens are refused
"""

from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient

from invoicing.core.auth import hash_reset_token
from invoicing.services.email import MockEmailProvider
from tests.factories import UserFactory


pytestmark = pytest.mark.integration

GENERIC_MESSAGE = "If an account exists with this email, you will receive a password reset link."
NEW_PASSWORD = "BrandNewPassword456!"


def _token_from_last_email() -> str:
    message = MockEmailProvider.sent_emails[-1]
    link = next(word for word in message.text_content.split() if "reset-password?token=" in word)
    return parse_qs(urlparse(link).query)["token"][0]


async def _request_reset(client: AsyncClient, email: str):
    return await client.post("/api/auth/forgot-password", json={"email": email})


async def _reset(client: AsyncClient, token: str, password: str = NEW_PASSWORD, confirm: str = None):
    return await client.post(
        "/api/auth/reset-password",
        json={"token": token, "password": password, "password_confirm": confirm or password},
    )


class TestForgotPassword:
    """POST /api/auth/forgot-password"""

    @pytest.mark.asyncio
    async def test_known_email_gets_reset_link(self, client: AsyncClient, db_session):
        user = await UserFactory.create(db_session, email="staff@example.com", name="Staff Member")

        response = await _request_reset(client, "STAFF@example.com")

        assert response.status_code == 200
        assert response.json() == {"message": GENERIC_MESSAGE}
        [message] = MockEmailProvider.sent_emails
        assert message.to_email == "staff@example.com"
        token = _token_from_last_email()
        assert len(token) == 64
        # Only the digest is stored
        assert user.reset_password_token_hash == hash_reset_token(token)
        assert user.reset_password_token_hash != token
        assert user.reset_password_expires > datetime.utcnow() + timedelta(minutes=59)

    @pytest.mark.asyncio
    async def test_unknown_email_gets_same_response(self, client: AsyncClient):
        response = await _request_reset(client, "nobody@example.com")

        assert response.status_code == 200
        assert response.json() == {"message": GENERIC_MESSAGE}
        assert MockEmailProvider.sent_emails == []

    @pytest.mark.asyncio
    async def test_inactive_account_gets_no_email(self, client: AsyncClient, db_session):
        await UserFactory.create(db_session, email="gone@example.com", is_active=False)

        response = await _request_reset(client, "gone@example.com")

        assert response.status_code == 200
        assert response.json() == {"message": GENERIC_MESSAGE}
        assert MockEmailProvider.sent_emails == []

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, client: AsyncClient):
        response = await _request_reset(client, "not-an-email")

        assert response.status_code == 400


class TestResetPassword:
    """POST /api/auth/reset-password"""

    @pytest.mark.asyncio
    async def test_reset_then_login_with_new_password(self, client: AsyncClient, db_session):
        await UserFactory.create(db_session, email="staff@example.com")
        await _request_reset(client, "staff@example.com")

        response = await _reset(client, _token_from_last_email())

        assert response.status_code == 200
        assert response.json()["message"].startswith("Password reset successfully")

        old_login = await client.post(
            "/api/auth/login",
            json={"email": "staff@example.com", "password": "SecurePassword123!"},
        )
        new_login = await client.post(
            "/api/auth/login",
            json={"email": "staff@example.com", "password": NEW_PASSWORD},
        )
        assert old_login.status_code == 401
        assert new_login.status_code == 200

    @pytest.mark.asyncio
    async def test_token_works_once(self, client: AsyncClient, db_session):
        await UserFactory.create(db_session, email="staff@example.com")
        await _request_reset(client, "staff@example.com")
        token = _token_from_last_email()

        first = await _reset(client, token)
        second = await _reset(client, token, password="AnotherPassword789!")

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["message"] == "Invalid or expired reset token"

    @pytest.mark.asyncio
    async def test_new_request_replaces_earlier_token(self, client: AsyncClient, db_session):
        await UserFactory.create(db_session, email="staff@example.com")
        await _request_reset(client, "staff@example.com")
        earlier = _token_from_last_email()
        await _request_reset(client, "staff@example.com")

        response = await _reset(client, earlier)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, client: AsyncClient, db_session):
        user = await UserFactory.create(db_session, email="staff@example.com")
        await _request_reset(client, "staff@example.com")
        token = _token_from_last_email()
        user.reset_password_expires = datetime.utcnow() - timedelta(minutes=1)
        await db_session.flush()

        response = await _reset(client, token)

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid or expired reset token"

    @pytest.mark.asyncio
    async def test_unknown_token_rejected(self, client: AsyncClient):
        response = await _reset(client, "f" * 64)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_passwords_must_match(self, client: AsyncClient, db_session):
        await UserFactory.create(db_session, email="staff@example.com")
        await _request_reset(client, "staff@example.com")

        response = await _reset(
            client, _token_from_last_email(), confirm="SomethingElse999!"
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Passwords do not match"

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, client: AsyncClient):
        response = await _reset(client, "f" * 64, password="short")

        assert response.status_code == 400
