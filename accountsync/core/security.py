import base64
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Request, HTTPException, status
from jose import jwt, JWTError

from accountsync.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 1 day


# --- Encryption Utilities ---

def get_fernet() -> Fernet:
    """Derives a Fernet key from the SECRET_KEY and returns a Fernet instance.

    Fernet requires a 32-byte url-safe base64-encoded key, so the key is the
    SHA-256 digest of SECRET_KEY.
    """
    key_bytes = settings.SECRET_KEY.encode()
    hash_object = hashlib.sha256(key_bytes)
    key_32 = base64.urlsafe_b64encode(hash_object.digest())
    return Fernet(key_32)


def encrypt_secret(plain_text: str) -> str:
    """Encrypts a string using Fernet symmetric encryption.

    Args:
        plain_text: The sensitive data to encrypt.

    Returns:
        The encrypted token as a string.
    """
    if not plain_text:
        return ""
    f = get_fernet()
    return f.encrypt(plain_text.encode()).decode()


def decrypt_secret(cipher_text: str) -> str:
    """Decrypts a Fernet token back to its original string.

    Values that are not Fernet tokens were stored before encryption was
    enabled and are returned unchanged.

    Args:
        cipher_text: The encrypted token.

    Returns:
        The original plain-text string.
    """
    if not cipher_text:
        return ""
    try:
        f = get_fernet()
        return f.decrypt(cipher_text.encode()).decode()
    except InvalidToken:
        logger.warning("Stored secret is not encrypted, using it as is")
        return cipher_text


# --- API Token Utilities ---

def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """Generates a signed JWT for an orchestrator calling the API."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload: dict[str, Any] = {"sub": subject, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def get_subject_from_token(token: str) -> Optional[str]:
    """Decodes a JWT token and extracts the caller name."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        return payload.get("sub")
    except JWTError:
        return None


async def get_current_caller(request: Request) -> str:
    """Dependency that checks the bearer token on API requests.

    Returns the token subject if valid, raises 401 otherwise. When
    AUTH_ENABLED is off every caller is treated as "anonymous".
    """
    if not settings.AUTH_ENABLED:
        return "anonymous"

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    subject = get_subject_from_token(auth_header[7:])
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return subject
