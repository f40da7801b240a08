"""KCIS Tools package for interacting with the KCIS Detention System portal."""

from importlib.metadata import PackageNotFoundError, version

from .session import (
    DEFAULT_BASE_URL,
    KCISResponseData,
    KCISSession,
    Outcome,
    check_account,
    download,
    dump_result,
    get_api,
    post_api,
    send_request,
)
from .utils import account_cookie_jar, encode_form

try:
    __version__ = version("kcis-tools")
except PackageNotFoundError:
    # Package is not installed, use fallback version
    __version__ = "UNKNOWN"

__all__ = [
    "DEFAULT_BASE_URL",
    "KCISResponseData",
    "KCISSession",
    "Outcome",
    "account_cookie_jar",
    "check_account",
    "download",
    "dump_result",
    "encode_form",
    "get_api",
    "post_api",
    "send_request",
]
