"""
Registry v2 Protocol Client

One method per registry endpoint. Paths are built on the configured base URL
and sent through RegistryTransport, so digest caching and bearer
authentication apply to every call.

Non-OK responses raise RegistryError. When the body follows the registry
error envelope ({"errors": [{"code", "message"}, ...]}) the first error's
code and message are used, otherwise "HTTP <status>: <reason>".
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Type, TypeVar
from urllib.parse import urlencode

from multidict import CIMultiDict
from pydantic import BaseModel

from registry.errors import RegistryError, TransportError
from registry.models import (
    MANIFEST_MEDIA_TYPES,
    MEDIA_TYPE_DOCKER_MANIFEST,
    MEDIA_TYPE_OCI_MANIFEST,
    CatalogResponse,
    ConfigBlob,
    Manifest,
    TagsResponse,
)
from registry.transport import DIGEST_HEADER, RegistryResponse, RegistryTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RegistryResult(Generic[T]):
    data: T
    headers: CIMultiDict
    status: int
    content_digest: Optional[str] = None


def _pagination_params(n: Optional[int], last: Optional[str]) -> Dict[str, str]:
    params = {}
    if n:
        params["n"] = str(n)
    if last:
        params["last"] = last
    return params


class RegistryClient:
    """
    Docker Registry HTTP API v2 client.

    Args:
        base_url: Registry root, e.g. "https://registry.example.com"
        transport: RegistryTransport to send through; a default one is created
            when omitted
    """

    def __init__(self, base_url: str, transport: Optional[RegistryTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport if transport is not None else RegistryTransport()

    async def close(self):
        await self.transport.close()

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _build_url(self, path: str, params: Optional[Dict[str, str]] = None) -> str:
        url = f"{self.base_url}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    def _raise_for_status(self, response: RegistryResponse):
        message = f"HTTP {response.status}: {response.reason}"
        code = None
        details = None

        try:
            error_data = response.json()
            errors = error_data.get("errors") if isinstance(error_data, dict) else None
            if isinstance(errors, list) and errors:
                first_error = errors[0] if isinstance(errors[0], dict) else {}
                code = first_error.get("code")
                message = first_error.get("message") or message
                details = errors
        except ValueError:
            # Not a JSON error envelope (HEAD responses have no body at all)
            pass

        raise RegistryError(message, code, response.status, details)

    def _handle_response(
        self,
        response: RegistryResponse,
        model: Optional[Type[BaseModel]] = None
    ) -> RegistryResult:
        if not response.ok:
            self._raise_for_status(response)

        try:
            data = response.json()
            if model is not None:
                data = model.model_validate(data)
        except ValueError as e:
            raise RegistryError(
                f"Invalid response from {response.url}: {e}",
                status=response.status,
            ) from e

        return RegistryResult(data=data, headers=response.headers, status=response.status)

    async def check_version(self) -> bool:
        """True when the registry answers /v2/ with a success status."""
        try:
            response = await self.transport.send("GET", self._build_url("/v2/"))
            return response.ok
        except TransportError as e:
            logger.debug(f"Registry {self.base_url} unreachable: {e}")
            return False

    async def list_repositories(
        self,
        n: Optional[int] = None,
        last: Optional[str] = None
    ) -> RegistryResult[CatalogResponse]:
        url = self._build_url("/v2/_catalog", _pagination_params(n, last))
        response = await self.transport.send("GET", url)
        return self._handle_response(response, CatalogResponse)

    async def list_tags(
        self,
        repository: str,
        n: Optional[int] = None,
        last: Optional[str] = None
    ) -> RegistryResult[TagsResponse]:
        url = self._build_url(f"/v2/{repository}/tags/list", _pagination_params(n, last))
        response = await self.transport.send("GET", url)
        return self._handle_response(response, TagsResponse)

    async def get_manifest(self, repository: str, reference: str) -> RegistryResult[Manifest]:
        """
        Fetch a manifest (or manifest list / index) by tag or digest.

        content_digest is the Docker-Content-Digest header when the registry
        sends it, otherwise the SHA-256 of the returned document.
        """
        url = self._build_url(f"/v2/{repository}/manifests/{reference}")
        response = await self.transport.send(
            "GET",
            url,
            {"Accept": ", ".join(MANIFEST_MEDIA_TYPES)},
        )
        result = self._handle_response(response, Manifest)
        result.content_digest = await self.transport.get_content_digest(response)
        return result

    async def get_manifest_digest(self, repository: str, reference: str) -> Optional[str]:
        url = self._build_url(f"/v2/{repository}/manifests/{reference}")
        response = await self.transport.send(
            "HEAD",
            url,
            {"Accept": f"{MEDIA_TYPE_OCI_MANIFEST}, {MEDIA_TYPE_DOCKER_MANIFEST}"},
        )

        if not response.ok:
            raise RegistryError(
                f"Failed to get manifest digest: {response.reason}",
                status=response.status,
            )

        return response.headers.get(DIGEST_HEADER)

    async def delete_manifest(self, repository: str, digest: str):
        url = self._build_url(f"/v2/{repository}/manifests/{digest}")
        response = await self.transport.send("DELETE", url)

        if not response.ok:
            raise RegistryError(
                f"Failed to delete manifest: {response.reason}",
                status=response.status,
            )

        logger.info(f"Deleted manifest {digest} from {repository}")

    async def delete_tag(self, repository: str, tag: str):
        """Resolve the tag to its manifest digest, then delete that manifest."""
        digest = await self.get_manifest_digest(repository, tag)
        if not digest:
            raise RegistryError("Failed to get manifest digest for deletion")

        await self.delete_manifest(repository, digest)

    async def get_blob(
        self,
        repository: str,
        digest: str,
        model: Optional[Type[BaseModel]] = None
    ) -> RegistryResult[Any]:
        url = self._build_url(f"/v2/{repository}/blobs/{digest}")
        response = await self.transport.send("GET", url)
        return self._handle_response(response, model)

    async def get_config_blob(self, repository: str, digest: str) -> RegistryResult[ConfigBlob]:
        return await self.get_blob(repository, digest, ConfigBlob)

    async def check_blob_exists(self, repository: str, digest: str) -> bool:
        url = self._build_url(f"/v2/{repository}/blobs/{digest}")
        response = await self.transport.send("HEAD", url)
        return response.ok

    async def get_blob_size(self, repository: str, digest: str) -> Optional[int]:
        url = self._build_url(f"/v2/{repository}/blobs/{digest}")
        response = await self.transport.send("HEAD", url)

        if not response.ok:
            return None

        content_length = response.headers.get("Content-Length")
        if not content_length:
            return None
        try:
            return int(content_length)
        except ValueError:
            return None
