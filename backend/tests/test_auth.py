"""
Unit tests for the authentication dependency.
Tests JWT verification (local and remote) and user extraction.
"""

import time

import pytest
from fastapi import HTTPException
from jose import jwt
from unittest.mock import Mock

from portal.auth import _verify_jwt_locally, get_current_user
from portal.config import Settings

TEST_SECRET = "test-jwt-secret-for-unit-tests"


def _request(jwt_secret=None, supabase=None):
    """A stand-in request whose app.state carries settings and the auth client."""
    request = Mock()
    request.app.state.settings = Settings(supabase_jwt_secret=jwt_secret)
    request.app.state.supabase = supabase
    return request


def _make_token(payload: dict, secret: str = TEST_SECRET) -> str:
    return jwt.encode(payload, secret, algorithm="HS256")


class TestGetCurrentUser:
    """Test JWT token verification and user extraction."""

    @pytest.mark.asyncio
    async def test_valid_token_returns_user_id(self):
        """Valid JWT token should return authenticated user_id."""
        mock_supabase = Mock()
        mock_supabase.auth.get_user.return_value = Mock(user=Mock(id="user-123"))

        user_id = await get_current_user(_request(supabase=mock_supabase), "Bearer valid.jwt.token")

        assert user_id == "user-123"
        mock_supabase.auth.get_user.assert_called_once_with("valid.jwt.token")

    @pytest.mark.asyncio
    async def test_missing_token_raises_401(self):
        """Missing Authorization header should raise 401."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(), None)

        assert exc_info.value.status_code == 401
        assert "Not authenticated" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_missing_bearer_prefix_raises_401(self):
        """Token without 'Bearer ' prefix should raise 401."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(), "invalid.jwt.token")

        assert exc_info.value.status_code == 401
        assert "Invalid authentication" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_invalid_token_raises_401(self):
        """A token rejected by Supabase should raise 401."""
        mock_supabase = Mock()
        mock_supabase.auth.get_user.side_effect = Exception("Invalid token")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(supabase=mock_supabase), "Bearer invalid.jwt.token")

        assert exc_info.value.status_code == 401
        assert "Invalid token" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_expired_token_raises_401(self):
        """An expired token reported by Supabase should raise 401."""
        mock_supabase = Mock()
        mock_supabase.auth.get_user.side_effect = Exception("Token expired")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(supabase=mock_supabase), "Bearer expired.jwt.token")

        assert exc_info.value.status_code == 401
        assert "expired" in str(exc_info.value.detail).lower()

    @pytest.mark.asyncio
    async def test_no_user_in_response_raises_401(self):
        """If Supabase returns no user, should raise 401."""
        mock_supabase = Mock()
        mock_supabase.auth.get_user.return_value = Mock(user=None)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(supabase=mock_supabase), "Bearer some.jwt.token")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unconfigured_auth_raises_503(self):
        """Without a JWT secret or Supabase client, nothing can verify the token."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(), "Bearer some.jwt.token")

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_jwt_secret_takes_the_local_path(self):
        """With a JWT secret configured, Supabase is never called."""
        mock_supabase = Mock()
        token = _make_token({"sub": "user-abc", "exp": int(time.time()) + 3600})

        user_id = await get_current_user(
            _request(jwt_secret=TEST_SECRET, supabase=mock_supabase), f"Bearer {token}"
        )

        assert user_id == "user-abc"
        mock_supabase.auth.get_user.assert_not_called()


class TestVerifyJwtLocally:
    """
    Unit tests for _verify_jwt_locally, the python-jose local verification path.

    Uses a real HS256-signed JWT so that the token structure is authentic.
    The secret is a fixed test value; it never leaves this test module.
    """

    def test_valid_token_returns_user_id(self):
        """A well-formed, unexpired HS256 token should return the sub claim."""
        token = _make_token({"sub": "user-abc", "exp": int(time.time()) + 3600})
        assert _verify_jwt_locally(token, TEST_SECRET) == "user-abc"

    def test_audience_is_not_checked(self):
        """Supabase tokens carry aud='authenticated'; that must not fail verification."""
        token = _make_token({"sub": "user-abc", "aud": "authenticated", "exp": int(time.time()) + 3600})
        assert _verify_jwt_locally(token, TEST_SECRET) == "user-abc"

    def test_expired_token_raises_401(self):
        """An expired token should raise 401 with 'Token expired'."""
        token = _make_token({"sub": "user-abc", "exp": int(time.time()) - 10})

        with pytest.raises(HTTPException) as exc_info:
            _verify_jwt_locally(token, TEST_SECRET)

        assert exc_info.value.status_code == 401
        assert "expired" in str(exc_info.value.detail).lower()

    def test_invalid_signature_raises_401(self):
        """A token signed with the wrong secret should raise 401."""
        token = _make_token({"sub": "user-abc", "exp": int(time.time()) + 3600})

        with pytest.raises(HTTPException) as exc_info:
            _verify_jwt_locally(token, "wrong-secret")

        assert exc_info.value.status_code == 401
        assert "Invalid token" in str(exc_info.value.detail)

    def test_missing_sub_claim_raises_401(self):
        """A token without a sub claim should raise 401."""
        token = _make_token({"role": "authenticated", "exp": int(time.time()) + 3600})

        with pytest.raises(HTTPException) as exc_info:
            _verify_jwt_locally(token, TEST_SECRET)

        assert exc_info.value.status_code == 401
        assert "Invalid token" in str(exc_info.value.detail)

    def test_garbage_token_raises_401(self):
        """A completely malformed token string should raise 401."""
        with pytest.raises(HTTPException) as exc_info:
            _verify_jwt_locally("not.a.real.jwt.at.all", TEST_SECRET)

        assert exc_info.value.status_code == 401
