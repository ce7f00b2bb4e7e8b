"""
HTTP transport for registry v2 requests.

Every request goes through RegistryTransport.send(), which:
1. Serves digest-addressed GETs from the DigestCache without touching the network
2. On 401, parses the Bearer challenge, awaits a credential from the
   application and replays the request once with `Authorization: Bearer ...`
3. Stores successful (200) responses back into the cache

Responses are fully buffered into RegistryResponse so callers can read the
body as many times as they like (status checks, JSON decoding, digest
computation).
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import aiohttp
from multidict import CIMultiDict

from registry.auth import CredentialResolver, parse_authenticate_header
from registry.digest_cache import CacheEntry, DigestCache
from registry.errors import Diagnostic, HttpErrorInfo, RegistryError, TransportError

logger = logging.getLogger(__name__)

DIGEST_HEADER = "Docker-Content-Digest"


@dataclass
class RegistryResponse:
    """Buffered HTTP response. The body can be read any number of times."""
    method: str
    url: str
    status: int
    reason: str = ""
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: bytes = b""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON. Raises ValueError for empty or invalid bodies."""
        return json.loads(self.body)


@dataclass
class JsonResult:
    data: Any
    status: int
    headers: CIMultiDict
    content_digest: Optional[str] = None


def calculate_digest(body: bytes) -> str:
    """Return `sha256:<lowercase hex>` for the given bytes."""
    return "sha256:" + hashlib.sha256(body).hexdigest()


def get_error_message(
    url: str,
    with_credentials: bool,
    headers: Mapping[str, str],
    page_origin: Optional[str] = None
) -> Diagnostic:
    """
    Explain why a request to the registry could not be completed.

    Advisory only: the result is meant for display, nothing raises it.

    Returns:
        HttpErrorInfo with code MIXED_CONTENT or INCORRECT_URL, or a hint string
        about CORS configuration.
    """
    page_is_secure = bool(page_origin) and page_origin.startswith("https:")
    if url and url.startswith("http://") and page_is_secure:
        return HttpErrorInfo(code="MIXED_CONTENT", url=url)

    if not url or not url.startswith("http"):
        return HttpErrorInfo(code="INCORRECT_URL", url=url)

    if with_credentials and "Access-Control-Allow-Credentials" not in headers:
        parsed = urlparse(url)
        return (
            "The `Access-Control-Allow-Credentials` header in the response is missing and must be set "
            "to `true` when the request's credentials mode is on. "
            f"Origin `{parsed.scheme}://{parsed.netloc}` is therefore not allowed access."
        )

    return (
        "An error occurred: Check your connection and your registry must have "
        f"`Access-Control-Allow-Origin` header set to `{page_origin or '*'}`"
    )


class RegistryTransport:
    """
    Single-request HTTP transport with digest caching and one-shot bearer auth.

    Args:
        cache: DigestCache shared by every request of this transport
        resolve_credential: async callable (challenge | None) -> BearerCredential | None,
            awaited when a request is answered with 401
        with_credentials: default credentials mode; when on, `auth` is attached
        auth: ambient credentials (aiohttp.BasicAuth) sent in credentials mode
        origin: origin the consuming application is served from, used only
            for error diagnostics
        session: optional aiohttp.ClientSession; created lazily when omitted
    """

    def __init__(
        self,
        cache: Optional[DigestCache] = None,
        resolve_credential: Optional[CredentialResolver] = None,
        with_credentials: bool = False,
        auth: Optional[aiohttp.BasicAuth] = None,
        origin: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.cache = cache if cache is not None else DigestCache()
        self.with_credentials = with_credentials
        self._resolve_credential = resolve_credential
        self._auth = auth
        self._origin = origin
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the session if this transport created it"""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "RegistryTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        with_credentials: Optional[bool] = None
    ) -> RegistryResponse:
        """
        Send one request.

        A second 401 after the credential replay is returned as-is; there is
        no retry loop. Raises TransportError when no HTTP response was received.
        """
        method = method.upper()
        request_headers = dict(headers or {})
        credentials = self.with_credentials if with_credentials is None else with_credentials

        cached = self.cache.get(method, url)
        if cached is not None and cached.body:
            logger.debug(f"Cache hit for {method} {url}")
            return RegistryResponse(
                method=method,
                url=url,
                status=200,
                reason="OK",
                headers=CIMultiDict({DIGEST_HEADER: cached.content_digest or ""}),
                body=cached.body,
                from_cache=True,
            )

        response = await self._request(method, url, request_headers, credentials)

        if response.status == 401 and self._resolve_credential is not None:
            challenge = parse_authenticate_header(response.headers.get("WWW-Authenticate"))

            if challenge is not None or not credentials:
                logger.debug(f"Authentication required for {url} (challenge: {challenge})")
                credential = await self._resolve_credential(challenge)

                retry_headers = dict(request_headers)
                if credential is not None and credential.value:
                    retry_headers["Authorization"] = f"Bearer {credential.value}"

                # Credentials mode only stays on when the application had nothing to offer
                response = await self._request(method, url, retry_headers, credential is None)
                if response.status == 401:
                    logger.info(f"Registry still answered 401 after authentication for {url}")
            else:
                logger.warning(f"401 from {url} without a usable Bearer challenge, not retrying")

        if response.status == 200:
            self.cache.put(
                method,
                url,
                CacheEntry(body=response.body, content_digest=response.headers.get(DIGEST_HEADER)),
            )

        return response

    async def _request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        with_credentials: bool
    ) -> RegistryResponse:
        session = await self._get_session()
        auth = self._auth if with_credentials else None
        # An explicit Authorization header takes precedence over ambient credentials
        if auth is not None and "Authorization" in CIMultiDict(headers):
            auth = None

        try:
            async with session.request(method, url, headers=headers, auth=auth) as response:
                body = await response.read()
                return RegistryResponse(
                    method=method,
                    url=url,
                    status=response.status,
                    reason=response.reason or "",
                    headers=CIMultiDict(response.headers),
                    body=body,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            diagnostic = self.get_error_message(url, with_credentials)
            logger.warning(f"Request {method} {url} failed: {e}")
            raise TransportError(diagnostic, url) from e

    def get_error_message(
        self,
        url: str,
        with_credentials: Optional[bool] = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> Diagnostic:
        credentials = self.with_credentials if with_credentials is None else with_credentials
        return get_error_message(url, credentials, headers or CIMultiDict(), self._origin)

    async def get_content_digest(self, response: RegistryResponse) -> Optional[str]:
        """
        Resolve the content digest of a response.

        Order: Docker-Content-Digest header, then the cached digest for the same
        request, then SHA-256 of the body. Returns None if hashing is unavailable.
        """
        digest = response.headers.get(DIGEST_HEADER)
        if digest:
            return digest

        cached = self.cache.get(response.method, response.url)
        if cached is not None and cached.content_digest:
            return cached.content_digest

        try:
            return calculate_digest(response.body)
        except (ValueError, TypeError) as e:
            logger.warning(f"Could not compute digest for {response.url}: {e}")
            return None

    async def get_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        content_digest: bool = False
    ) -> JsonResult:
        """GET a JSON document. Raises RegistryError for non-OK statuses."""
        response = await self.send("GET", url, headers)
        if not response.ok:
            raise RegistryError(f"HTTP {response.status}: {response.reason}", status=response.status)

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid JSON from {url}: {e}", status=response.status) from e

        result = JsonResult(data=data, status=response.status, headers=response.headers)
        if content_digest:
            result.content_digest = await self.get_content_digest(response)
        return result
