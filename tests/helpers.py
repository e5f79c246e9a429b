"""Shared helpers for building test tokens and mock database responses."""

import time
from typing import Any
from unittest.mock import MagicMock

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwt as jose_jwt
from jwt.algorithms import ECAlgorithm

# Signing key pair for test tokens; the public half is the configured JWK
_TEST_PRIVATE_KEY = ec.generate_private_key(ec.SECP256R1())
TEST_PRIVATE_KEY_PEM = _TEST_PRIVATE_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode()
TEST_SIGNING_KEY_JWK = ECAlgorithm.to_jwk(_TEST_PRIVATE_KEY.public_key())

TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_USER_ID = "660e8400-e29b-41d4-a716-446655440000"
TEST_CONVERSATION_ID = "770e8400-e29b-41d4-a716-446655440000"
TEST_RUN_ID = "880e8400-e29b-41d4-a716-446655440000"


def generate_private_key_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def create_test_token(
    sub: str = TEST_USER_ID,
    email: str | None = "test@example.com",
    exp_offset: int = 3600,
    private_key_pem: str = TEST_PRIVATE_KEY_PEM,
    claims: dict[str, Any] | None = None,
) -> str:
    """Create an ES256 token signed with the test key.

    Args:
        sub: Subject (user ID).
        email: User email.
        exp_offset: Seconds from now for expiration (negative for expired).
        private_key_pem: Signing key.
        claims: Claims overriding the defaults.
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
        "iss": "https://test-project.supabase.co/auth/v1",
    }
    payload.update(claims or {})
    return jose_jwt.encode(payload, private_key_pem, algorithm="ES256")


def auth_headers(sub: str = TEST_USER_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_test_token(sub=sub)}"}


def make_response(data: Any = None, count: int | None = None) -> MagicMock:
    """Build a mock PostgREST response."""
    response = MagicMock()
    response.data = data
    response.count = count
    return response


def make_completion(content: str | None, prompt_tokens: int | None = None, completion_tokens: int | None = None) -> MagicMock:
    """Build a mock chat-completion response."""
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    if prompt_tokens is None and completion_tokens is None:
        response.usage = None
    else:
        response.usage.prompt_tokens = prompt_tokens
        response.usage.completion_tokens = completion_tokens
        response.usage.total_tokens = (prompt_tokens or 0) + (completion_tokens or 0)
    return response
