import base64
import binascii
import secrets
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Request

from uplite import config
from uplite.config import Settings
from uplite.dependencies import get_settings
from uplite.logger_config import get_logger

logger = get_logger("auth")

Credentials = Tuple[str, str]


def parse_basic_auth(header: Optional[str]) -> Optional[Credentials]:
    """Extract (username, password) from an ``Authorization: Basic ...`` header.

    Returns None when the header is missing, uses another scheme, or does
    not decode to ``user:password``.
    """
    if not header:
        return None

    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


def credentials_match(credentials: Optional[Credentials], username: str, password: str) -> bool:
    """Compare a credential pair against the configured one in constant time."""
    if credentials is None:
        return False
    user_ok = secrets.compare_digest(credentials[0].encode("utf-8"), username.encode("utf-8"))
    password_ok = secrets.compare_digest(credentials[1].encode("utf-8"), password.encode("utf-8"))
    return user_ok and password_ok


async def require_auth(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Reject the request with 401 unless it carries the configured credentials."""
    credentials = parse_basic_auth(request.headers.get("authorization"))
    if not credentials_match(credentials, settings.username, settings.password):
        logger.debug(f"Rejected credentials for {request.method} {request.url.path}")
        raise HTTPException(
            status_code=401,
            detail="Access Denied",
            headers={"WWW-Authenticate": f'Basic realm="{config.AUTH_REALM}"'},
        )
    return credentials[0]
