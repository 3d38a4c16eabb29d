import secrets

from flask import current_app, has_app_context
from werkzeug.security import check_password_hash, generate_password_hash

TOKEN_PREFIX = "mre_"
TOKEN_BYTES = 32
LOOKUP_LENGTH = 12
DEFAULT_HASH_METHOD = "pbkdf2:sha256:600000"


def generate_token() -> str:
    """
    Generate a new API token.

    Returns:
        ``mre_`` followed by 64 hex characters (32 random bytes)
    """
    return f"{TOKEN_PREFIX}{secrets.token_hex(TOKEN_BYTES)}"


def token_lookup_key(token):
    """
    Non-secret index for a token: the first hex characters after the prefix.

    Returns None when the value is not shaped like a generated token.
    """
    if not token or not token.startswith(TOKEN_PREFIX):
        return None
    key = token[len(TOKEN_PREFIX):len(TOKEN_PREFIX) + LOOKUP_LENGTH]
    return key if len(key) == LOOKUP_LENGTH else None


def _hash_method() -> str:
    if has_app_context():
        return current_app.config.get("API_TOKEN_HASH_METHOD", DEFAULT_HASH_METHOD)
    return DEFAULT_HASH_METHOD


def hash_token(token: str) -> str:
    """Salted one-way hash for storage. The plaintext is never persisted."""
    return generate_password_hash(token, method=_hash_method())


def verify_token_hash(token: str, token_hash: str) -> bool:
    if not token or not token_hash:
        return False
    return check_password_hash(token_hash, token)


def extract_bearer_token(authorization_header):
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header.

    Returns None for absent or malformed headers.
    """
    if not authorization_header:
        return None

    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0] != "Bearer":
        return None

    token = parts[1].strip()
    return token or None
