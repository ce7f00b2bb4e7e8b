"""
Bearer token authentication for registry v2.

A registry that wants a token answers 401 with a challenge such as:
    Bearer realm="https://auth.example.com/token",service="registry.example.com",scope="repository:app:pull"

The transport parses the challenge and awaits a resolve_credential callable
supplied by the application. Two ready-made resolvers live here: one that
asks the token endpoint named by the challenge, one that returns a stored token.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)

# Seconds allowed for a token endpoint round trip
TOKEN_REQUEST_TIMEOUT = 10

AUTHENTICATE_HEADER_PATTERN = re.compile(
    r'Bearer realm="(?P<realm>[^"]+)",service="(?P<service>[^"]+)",scope="(?P<scope>[^"]+)"'
)


@dataclass(frozen=True)
class AuthChallenge:
    realm: str
    service: str
    scope: str


@dataclass(frozen=True)
class BearerCredential:
    token: Optional[str] = None
    access_token: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BearerCredential":
        return cls(token=data.get("token"), access_token=data.get("access_token"))

    @property
    def value(self) -> Optional[str]:
        """Token to send; `token` wins over `access_token`."""
        return self.token or self.access_token


CredentialResolver = Callable[[Optional[AuthChallenge]], Awaitable[Optional[BearerCredential]]]


def parse_authenticate_header(header: Optional[str]) -> Optional[AuthChallenge]:
    """
    Parse a WWW-Authenticate header into a challenge.

    All three of realm, service and scope are required; anything else is
    an unusable challenge and yields None.
    """
    if not header:
        return None

    match = AUTHENTICATE_HEADER_PATTERN.search(header)
    if not match:
        logger.debug(f"Unusable WWW-Authenticate header: {header[:60]}")
        return None

    return AuthChallenge(
        realm=match.group("realm"),
        service=match.group("service"),
        scope=match.group("scope"),
    )


class StaticCredentialResolver:
    """Answer every challenge with a token the application already holds"""

    def __init__(self, token: str):
        self._credential = BearerCredential(token=token)

    async def __call__(self, challenge: Optional[AuthChallenge]) -> Optional[BearerCredential]:
        return self._credential


class TokenEndpointResolver:
    """
    Fetch a bearer token from the realm named in the challenge.

    Sends Basic credentials when a username is configured, anonymous
    otherwise. Returns None (no credential) when there is no challenge, the
    endpoint fails, or the response carries neither token field.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = TOKEN_REQUEST_TIMEOUT
    ):
        self._auth = aiohttp.BasicAuth(username, password or "") if username else None
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __call__(self, challenge: Optional[AuthChallenge]) -> Optional[BearerCredential]:
        if challenge is None:
            return None

        params = {"service": challenge.service, "scope": challenge.scope}
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()

        try:
            async with session.get(
                challenge.realm,
                params=params,
                auth=self._auth,
                timeout=self._timeout
            ) as response:
                if response.status != 200:
                    response_text = await response.text()
                    logger.error(
                        f"Token request to {challenge.realm} failed with status "
                        f"{response.status}: {response_text[:200]}"
                    )
                    return None

                data = await response.json(content_type=None)
                credential = BearerCredential.from_dict(data if isinstance(data, dict) else {})
                if not credential.value:
                    logger.error(f"Token endpoint {challenge.realm} returned 200 but no token in response")
                    return None

                logger.debug(f"Obtained token from {challenge.realm} for scope {challenge.scope}")
                return credential

        except asyncio.TimeoutError:
            logger.warning(f"Timeout fetching token from {challenge.realm}")
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"Error fetching token from {challenge.realm}: {e}")
        finally:
            if owns_session:
                await session.close()

        return None
