"""Unit tests for JWT decoding and the current-user dependency."""

from unittest.mock import MagicMock, patch

import pytest

from sage.api.deps import get_current_user
from sage.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt, get_signing_key
from sage.api.middleware.error_handler import AuthenticationError
from tests.helpers import (
    TEST_SIGNING_KEY_JWK,
    TEST_USER_ID,
    create_test_token,
    generate_private_key_pem,
)


@pytest.fixture(autouse=True)
def clear_signing_key_cache():
    get_signing_key.cache_clear()
    yield
    get_signing_key.cache_clear()


class TestDecodeJWT:
    """Tests for decode_jwt function."""

    def test_decode_jwt_with_valid_token(self) -> None:
        payload = decode_jwt(create_test_token())

        assert payload.sub == TEST_USER_ID
        assert payload.email == "test@example.com"
        assert payload.aud == "authenticated"

    def test_decode_jwt_with_expired_token(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(exp_offset=-3600))

        assert exc_info.value.code == AuthErrorCode.TOKEN_EXPIRED

    def test_decode_jwt_with_foreign_signature(self) -> None:
        token = create_test_token(private_key_pem=generate_private_key_pem())

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.code == AuthErrorCode.INVALID_SIGNATURE

    def test_decode_jwt_with_garbage(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            decode_jwt("not-a-jwt")

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    @patch("sage.api.middleware.auth.get_settings")
    def test_invalid_jwk_configuration(self, mock_settings: MagicMock) -> None:
        mock_settings.return_value.supabase_signing_key_jwk = "{not json"

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token())

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    @patch("sage.api.middleware.auth.get_settings")
    def test_signing_key_loaded_from_settings(self, mock_settings: MagicMock) -> None:
        mock_settings.return_value.supabase_signing_key_jwk = TEST_SIGNING_KEY_JWK

        assert get_signing_key() is not None


class TestGetCurrentUser:
    """Tests for the get_current_user dependency."""

    @pytest.mark.asyncio
    async def test_returns_user_context(self) -> None:
        user = await get_current_user(f"Bearer {create_test_token()}")

        assert str(user.user_id) == TEST_USER_ID
        assert user.email == "test@example.com"

    @pytest.mark.asyncio
    async def test_missing_header(self) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user("")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_scheme(self) -> None:
        with pytest.raises(AuthenticationError):
            await get_current_user(f"Token {create_test_token()}")

    @pytest.mark.asyncio
    async def test_expired_token(self) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user(f"Bearer {create_test_token(exp_offset=-60)}")

        assert exc_info.value.message == "Token has expired"

    @pytest.mark.asyncio
    async def test_non_uuid_subject(self) -> None:
        with pytest.raises(AuthenticationError):
            await get_current_user(f"Bearer {create_test_token(sub='service-account')}")
