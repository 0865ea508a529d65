"""
Registry HTTP transport for the Distribution API.

Provides authenticated request execution with the Docker Registry v2 auth
flow: Basic credentials up front, and a single transparent retry after a
``401`` Bearer challenge has been exchanged for a token.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, Optional, Union
from urllib.parse import urljoin

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .. import __version__
from ..digest import CHUNK_SIZE
from ..errors import RegistryRequestError
from ..settings import Settings
from .auth import AuthKind, AuthSession, BearerChallenge, DockerAuth, parse_bearer_challenge

logger = logging.getLogger(__name__)

Body = Union[bytes, Path, None]

# Failures where the request never reached the registry; safe to resend.
_RETRYABLE = (httpx.ConnectError, httpx.ConnectTimeout)

__all__ = ["RegistryTransport", "normalize_base_url"]


def normalize_base_url(host: str, *, tls: bool = False) -> str:
    """
    Build the registry base URL.

    Keeps a scheme the caller already provided; otherwise uses http unless
    ``tls`` is set.

    Examples:
        >>> normalize_base_url("localhost:5000")
        'http://localhost:5000'

        >>> normalize_base_url("https://ghcr.io/")
        'https://ghcr.io'
    """
    host = host.strip().rstrip("/")
    if host.startswith("http://") or host.startswith("https://"):
        return host
    return f"{'https' if tls else 'http'}://{host}"


class RegistryTransport:
    """
    Low-level HTTP executor bound to one registry and one AuthSession.

    The session may move from Basic to Bearer mid-sequence; every later
    request reuses the Bearer header without re-challenging.
    """

    def __init__(self, settings: Settings, *,
                 transport: Optional[httpx.BaseTransport] = None,
                 docker_auth: Optional[DockerAuth] = None):
        """
        Initialize registry transport.

        Args:
            settings: Timeouts, retry count and TLS policy
            transport: Optional httpx transport (tests inject a mock)
            docker_auth: Docker config lookup used when no credentials are given
        """
        self.settings = settings
        self.session = AuthSession()
        self.base_url: Optional[str] = None
        self.docker_auth = docker_auth or DockerAuth()
        self._auth_lock = threading.Lock()

        self.client = httpx.Client(
            timeout=httpx.Timeout(settings.http_timeout_s, connect=min(settings.http_timeout_s, 10.0)),
            follow_redirects=True,
            verify=settings.registry_verify_tls,
            headers={"User-Agent": f"image-deployer/{__version__}"},
            transport=transport,
        )

    def authenticate(self, username: Optional[str], password: Optional[str], host: str) -> bool:
        """
        Bind the transport to a registry and set Basic credentials.

        Falls back to the Docker config when no username is given. A
        ``GET /v2/`` probe runs afterwards purely to surface warnings; its
        failure does not abort authentication.

        Returns:
            True if the probe succeeded
        """
        self.base_url = normalize_base_url(host, tls=self.settings.registry_tls)

        if not username:
            creds = self.docker_auth.get_credentials(host)
            if creds:
                logger.debug(f"Using Docker config credentials for {host}")
                username, password = creds

        if username:
            self.session.use_basic(username, password or "")

        try:
            self.execute("GET", "/v2/")
        except RegistryRequestError as e:
            logger.warning(f"Registry login check warning: {e}")
            return False

        logger.info(f"Registry login successful ({self.base_url}/v2/)")
        return True

    def resolve_url(self, path: str) -> str:
        """Join a registry path or ``Location`` header onto the base URL."""
        if self.base_url is None:
            raise RegistryRequestError("Transport is not authenticated against a registry")
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return urljoin(self.base_url, path)

    def execute(self, method: str, path: str, body: Body = None,
                headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        """
        Issue one request with the current Authorization header.

        On a ``401`` carrying a Bearer challenge, obtains a token from the
        realm, upgrades the session, and retries exactly once.

        Args:
            method: HTTP method
            path: Registry path ("/v2/...") or absolute URL
            body: Request body as bytes, or a file path streamed from disk
            headers: Extra request headers

        Returns:
            The successful (2xx) response

        Raises:
            RegistryRequestError: On network failure, a non-2xx response, or
                a second 401
        """
        url = self.resolve_url(path)
        request_headers = dict(headers or {})

        response = self._send(method, url, body, request_headers)

        if response.status_code == 401:
            challenge = parse_bearer_challenge(response.headers.get("WWW-Authenticate", ""))
            if challenge is not None:
                logger.debug(f"Bearer challenge from {challenge.realm} (scope={challenge.scope})")
                sent = request_headers.get("Authorization") or self.session.header
                with self._auth_lock:
                    cached = self.session.cached_token(challenge)
                    if cached is not None and sent != f"Bearer {cached}":
                        self.session.use_bearer(cached)
                    else:
                        self._fetch_token(challenge)
                response = self._send(method, url, body, request_headers)

        if not response.is_success:
            raise RegistryRequestError(
                f"{method} {url} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                body=_response_text(response),
                method=method,
                url=url,
            )
        return response

    def _send(self, method: str, url: str, body: Body, headers: Dict[str, str]) -> httpx.Response:
        attempt_headers = dict(headers)
        auth_header = self.session.header
        if auth_header and "Authorization" not in attempt_headers:
            attempt_headers["Authorization"] = auth_header

        retryer = Retrying(
            stop=stop_after_attempt(self.settings.http_retry + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(_RETRYABLE),
            reraise=True,
        )
        try:
            return retryer(self._send_once, method, url, body, attempt_headers)
        except httpx.HTTPError as e:
            raise RegistryRequestError(
                f"Network error during {method} {url}: {e}", method=method, url=url
            ) from e

    def _send_once(self, method: str, url: str, body: Body, headers: Dict[str, str]) -> httpx.Response:
        content = _stream_file(body) if isinstance(body, Path) else body
        return self.client.request(method, url, content=content, headers=headers)

    def _fetch_token(self, challenge: BearerChallenge) -> str:
        """
        Exchange the session's Basic credentials for a Bearer token.

        Raises:
            RegistryRequestError: If the realm rejects the request or returns
                no token
        """
        params = {}
        if challenge.service:
            params["service"] = challenge.service
        if challenge.scope:
            params["scope"] = challenge.scope

        headers = {}
        if self.session.basic_header:
            headers["Authorization"] = self.session.basic_header

        logger.info("Attempting Bearer token retrieval...")
        try:
            response = self.client.get(challenge.realm, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise RegistryRequestError(
                f"Network error fetching token from {challenge.realm}: {e}",
                method="GET", url=challenge.realm,
            ) from e

        if not response.is_success:
            raise RegistryRequestError(
                f"Token request to {challenge.realm} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                body=_response_text(response),
                method="GET",
                url=challenge.realm,
            )

        try:
            token_data = response.json()
        except ValueError as e:
            raise RegistryRequestError(
                f"Token endpoint {challenge.realm} returned invalid JSON",
                status_code=response.status_code, body=_response_text(response),
            ) from e

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            raise RegistryRequestError(
                f"Token endpoint {challenge.realm} returned no token",
                status_code=response.status_code,
            )

        was_basic = self.session.kind is not AuthKind.BEARER
        self.session.use_bearer(token, challenge, token_data.get("expires_in"))
        if was_basic:
            logger.debug("Registry session upgraded to Bearer")
        return token

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _stream_file(path: Path) -> Iterator[bytes]:
    with open(path, "rb") as f:
        while True:
            chunk = f.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


def _response_text(response: httpx.Response) -> Optional[str]:
    try:
        text = response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return None
    return text[:2000] if text else None
