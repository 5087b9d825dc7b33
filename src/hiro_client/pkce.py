"""PKCE (Proof Key for Code Exchange) for the authorization code flow.

S256 challenges only, as required by the auth API.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from .models import PKCEChallenge


def generate_code_verifier(length: int = 86) -> str:
    """Generate a random code verifier.

    Args:
        length: Length of the verifier (43-128 characters).

    Returns:
        URL-safe base64-encoded random string.

    Raises:
        ValueError: If length is outside valid range.
    """
    if not 43 <= length <= 128:
        msg = "Code verifier length must be between 43 and 128 characters"
        raise ValueError(msg)

    # base64 needs 4 characters per 3 bytes
    num_bytes = (length * 3) // 4 + 1
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).decode("ascii")
    return verifier.rstrip("=")[:length]


def generate_code_challenge(code_verifier: str) -> str:
    """Base64url-encoded SHA-256 hash of the verifier, without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def create_pkce_challenge(verifier_length: int = 86) -> PKCEChallenge:
    code_verifier = generate_code_verifier(verifier_length)
    return PKCEChallenge(
        code_verifier=code_verifier,
        code_challenge=generate_code_challenge(code_verifier),
    )


def generate_state(length: int = 16) -> str:
    """Random state parameter that ties the callback to the authorize request."""
    return secrets.token_urlsafe(length)
