"""KCISSession class for handling KCIS portal authentication and requests."""

import logging
from dataclasses import dataclass
from enum import Enum
from os import PathLike
from urllib.parse import urljoin, urlsplit

from requests import HTTPError, RequestException, Response, Session, Timeout
from requests.cookies import RequestsCookieJar

from .utils import account_cookie_jar, encode_form, mask_account

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://portal.kcisec.com/"
DEFAULT_API = "/DSAI/"
DEFAULT_COOKIE_PATH = "/DSAI/"
LOGOUT_MARKER = "[登出]"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
DOWNLOAD_CHUNK_SIZE = 64 * 1024


class Outcome(Enum):
    """How a single exchange with the portal ended."""

    OK = "ok"
    HTTP_ERROR = "http_error"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class KCISResponseData:
    """Result of one request to the portal.

    Truthy exactly when the request succeeded. ``body`` holds the response text
    for GET and POST; it is None for downloads and for every failure.
    """

    outcome: Outcome
    url: str
    body: str | None = None
    status_code: int | None = None
    error: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.outcome is Outcome.OK

    def __bool__(self) -> bool:
        return self.is_ok


def api_url(api: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Resolve a relative API path against the portal base address."""
    return urljoin(base_url, api)


def exchange(
    session: Session,
    method: str,
    url: str,
    destination: str | PathLike | None = None,
    **kwargs,
) -> KCISResponseData:
    """Perform one request and fold every transport failure into the result.

    Cookies returned by the server are merged into ``session.cookies`` only when
    the request succeeds; a failed request leaves the jar as it was. When
    ``destination`` is given the body is streamed to that file instead of being
    read into memory.
    """
    snapshot = session.cookies.copy()
    result = _send(session, method, url, destination, **kwargs)
    if not result:
        restore_cookies(session.cookies, snapshot)
    return result


def restore_cookies(
    cookie_jar: RequestsCookieJar, snapshot: RequestsCookieJar
) -> None:
    """Put a jar back to an earlier copy, keeping the same jar object."""
    cookie_jar.clear()
    cookie_jar.update(snapshot)


def _send(
    session: Session,
    method: str,
    url: str,
    destination: str | PathLike | None = None,
    **kwargs,
) -> KCISResponseData:
    logger.debug(f"{method} {url}")
    try:
        with session.request(
            method, url, stream=destination is not None, **kwargs
        ) as response:
            response.raise_for_status()
            if destination is None:
                body = read_text(response)
            else:
                save_content(response, destination)
                body = None
    except Timeout as e:
        logger.error(f"Timed out on {method} {url}: {e}")
        return KCISResponseData(Outcome.TIMEOUT, url, error=str(e))
    except HTTPError as e:
        status_code = e.response.status_code if e.response is not None else None
        logger.error(f"{method} {url} failed with HTTP status {status_code}")
        return KCISResponseData(
            Outcome.HTTP_ERROR, url, status_code=status_code, error=str(e)
        )
    except RequestException as e:
        logger.error(f"Failed to {method} {url}: {e}")
        return KCISResponseData(Outcome.TRANSPORT_ERROR, url, error=str(e))
    except OSError as e:
        logger.error(f"Failed to save {url} to {destination}: {e}")
        return KCISResponseData(Outcome.TRANSPORT_ERROR, url, error=str(e))
    except UnicodeEncodeError as e:
        # http.client sends headers, cookies included, as latin-1
        logger.error(f"Cannot encode request for {method} {url}: {e}")
        return KCISResponseData(Outcome.TRANSPORT_ERROR, url, error=str(e))

    logger.debug(f"{method} {url} returned {response.status_code}")
    return KCISResponseData(
        Outcome.OK, url, body=body, status_code=response.status_code
    )


def read_text(response: Response) -> str:
    """Read the whole body as text, assuming UTF-8 when no charset is declared."""
    if "charset" not in response.headers.get("Content-Type", "").lower():
        response.encoding = "utf-8"
    return response.text


def save_content(response: Response, destination: str | PathLike) -> None:
    """Stream the response body to destination, replacing any existing file."""
    size = 0
    with open(destination, "wb") as f:
        for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
            f.write(chunk)
            size += len(chunk)
    logger.info(f"Created {destination} ({size} bytes)")


def form_kwargs(
    fields: dict | None = None, body: str | None = None, multipart: bool = False
) -> dict:
    """Build request keyword arguments for one of the POST payload modes.

    - no fields and no body: nothing is sent
    - fields: percent-encoded ``key=value&...`` form body
    - body: a pre-formed urlencoded string sent verbatim
    - fields with ``multipart=True``: a real multipart/form-data body
    """
    if fields is not None and body is not None:
        raise ValueError("Pass either fields or a pre-formed body, not both")
    if multipart:
        if body is not None:
            raise ValueError("A pre-formed body cannot be sent as multipart")
        return {"files": {k: (None, str(v)) for k, v in (fields or {}).items()}}
    if fields is not None:
        body = encode_form(fields)
    if body is None:
        return {}
    return {
        "data": body.encode("utf-8"),
        "headers": {"Content-Type": FORM_CONTENT_TYPE},
    }


def send_request(
    method: str, url: str, cookies: RequestsCookieJar, **kwargs
) -> KCISResponseData:
    """Send one request with an explicit cookie jar, updating the jar in place."""
    with Session() as session:
        session.cookies = cookies
        return exchange(session, method, url, **kwargs)


def is_logged_in(result: KCISResponseData) -> bool:
    """Check whether a page was served to an authenticated session."""
    return result.is_ok and LOGOUT_MARKER in result.body


class KCISSession(Session):
    """Session class for interacting with the KCIS Detention System portal."""

    def __init__(
        self,
        account: str,
        base_url: str = DEFAULT_BASE_URL,
        cookie_path: str = DEFAULT_COOKIE_PATH,
        timeout: float | None = None,
    ):
        super().__init__()
        self._base_url = base_url
        self._cookie_path = cookie_path
        self.timeout = timeout
        self.account = account

    @property
    def account(self) -> str:
        return self._account

    @account.setter
    def account(self, value: str) -> None:
        # A new account starts over with a jar holding only its own cookie
        self._account = value
        self.cookies = account_cookie_jar(value, self.host, self.cookie_path)

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._base_url = value
        self.account = self._account

    @property
    def cookie_path(self) -> str:
        return self._cookie_path

    @cookie_path.setter
    def cookie_path(self, value: str) -> None:
        self._cookie_path = value
        self.account = self._account

    @property
    def host(self) -> str:
        return urlsplit(self.base_url).hostname

    def api_url(self, api: str) -> str:
        return api_url(api, self.base_url)

    def send_request(
        self,
        method: str,
        api: str = DEFAULT_API,
        destination: str | PathLike | None = None,
        **kwargs,
    ) -> KCISResponseData:
        """Send one request to a portal path using this session's cookies."""
        kwargs.setdefault("timeout", self.timeout)
        return exchange(self, method, self.api_url(api), destination, **kwargs)

    def get_api(self, api: str = DEFAULT_API) -> KCISResponseData:
        """GET a portal path and return its body."""
        return self.send_request("GET", api)

    def post_api(
        self,
        api: str = DEFAULT_API,
        fields: dict | None = None,
        body: str | None = None,
        multipart: bool = False,
    ) -> KCISResponseData:
        """POST to a portal path; see form_kwargs for the payload modes."""
        return self.send_request("POST", api, **form_kwargs(fields, body, multipart))

    def download(self, api: str, destination: str | PathLike) -> KCISResponseData:
        """GET a portal path and write the body to destination."""
        return self.send_request("GET", api, destination=destination)

    def check_authorized(self) -> bool:
        """Check if the portal accepts this session's account."""
        authorized = is_logged_in(self.get_api(DEFAULT_API))
        logger.debug(
            f"Account {mask_account(self.account)} "
            f"{'is' if authorized else 'is not'} logged in"
        )
        return authorized

    def print_cookies(self) -> None:
        """Print all cookies in the session."""
        if self.cookies:
            print("Cookies:")
            for cookie in self.cookies:
                print(f"  {cookie.name}: {cookie.value} ({cookie.domain}{cookie.path})")
        else:
            print("No cookies")


def get_api(account: str, api: str = DEFAULT_API, **options) -> KCISResponseData:
    """GET a portal path with a fresh session derived from an account."""
    with KCISSession(account, **options) as session:
        return session.get_api(api)


def post_api(
    account: str,
    api: str = DEFAULT_API,
    fields: dict | None = None,
    body: str | None = None,
    multipart: bool = False,
    **options,
) -> KCISResponseData:
    """POST to a portal path with a fresh session derived from an account."""
    with KCISSession(account, **options) as session:
        return session.post_api(api, fields, body, multipart)


def download(
    account: str, api: str, destination: str | PathLike, **options
) -> KCISResponseData:
    """Download a portal path with a fresh session derived from an account."""
    with KCISSession(account, **options) as session:
        return session.download(api, destination)


def check_account(account: str, **options) -> bool:
    """Check whether the portal accepts an account token."""
    with KCISSession(account, **options) as session:
        return session.check_authorized()


def dump_result(result: KCISResponseData) -> None:
    """Log the outcome of a request and print its body, if any."""
    logger.info(f"Response URL: {result.url}")
    logger.info(f"Outcome: {result.outcome.value} (status {result.status_code})")
    if result.body is not None:
        print(result.body)
