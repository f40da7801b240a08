"""Utility functions for KCIS tools."""

import logging
from urllib.parse import quote

from requests.cookies import RequestsCookieJar

logger = logging.getLogger(__name__)

ACCOUNT_COOKIE = "DSAI"


def account_cookie_jar(account: str, host: str, path: str) -> RequestsCookieJar:
    """Create a fresh cookie jar holding only the DSAI cookie for an account."""
    cookie_jar = RequestsCookieJar()
    cookie_jar.set(ACCOUNT_COOKIE, account, domain=host, path=path)
    logger.debug(
        f"Created {ACCOUNT_COOKIE} cookie for {mask_account(account)} "
        f"on {host}{path}"
    )
    return cookie_jar


def encode_form(fields: dict) -> str:
    """Encode a field map as key=value pairs joined by '&'.

    Keys and values are percent-encoded, so a space becomes %20 rather than '+'.
    """
    return "&".join(
        f"{quote(str(key), safe='')}={quote(str(value), safe='')}"
        for key, value in fields.items()
    )


def mask_account(account: str) -> str:
    """Shorten an account token so it can appear in log messages."""
    if len(account) <= 4:
        return "****"
    return f"{account[:4]}..."
