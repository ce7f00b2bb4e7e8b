"""
Registry Domain Service

Composes RegistryClient calls into the records the browsing UI renders:
- get_image_info: manifest + config blob → ImageInfo
- get_tags_info / list_image_tags: ImageInfo for many tags concurrently
- list_repositories: one catalog page with the tags of every repository
- delete_image_tag: delete-by-tag

Batch operations differ in failure handling on purpose:
- get_tags_info is all-or-nothing (first failure fails the batch)
- list_image_tags isolates per-tag failures behind a placeholder record
- list_repositories is all-or-nothing (one failing tag list fails the page)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import aiohttp

from utils.formatting import format_binary_size, short_digest

from registry.auth import CredentialResolver, TokenEndpointResolver
from registry.client import RegistryClient
from registry.digest_cache import DigestCache, SessionStore
from registry.models import ConfigBlob, Descriptor, HistoryEntry, ImageHistoryItem, ImageInfo, Manifest
from registry.transport import RegistryTransport

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_LIMIT = 100


@dataclass
class RepositoryTags:
    repo: str
    tags: List[str] = field(default_factory=list)


def compute_image_size(manifest: Manifest) -> int:
    """Config blob size plus the size of every layer (missing sizes count as 0)."""
    config_size = manifest.config.size if manifest.config else 0
    layers_size = sum(layer.size or 0 for layer in manifest.layers or [])
    return (config_size or 0) + layers_size


def reconcile_history(
    history: List[HistoryEntry],
    layers: List[Descriptor]
) -> List[ImageHistoryItem]:
    """
    Attach layer size and digest to the history entries that produced them.

    Layers are consumed strictly in order by the non-empty history entries.
    Once the layers run out, the remaining entries keep no size/id; a count
    mismatch is not an error.

    Example:
        history = [h0, h1(empty_layer), h2], layers = [L0, L1]
        → h0 gets L0, h1 gets nothing, h2 gets L1
    """
    items = []
    layer_index = 0

    for entry in history:
        item = ImageHistoryItem(
            created=entry.created,
            created_by=entry.created_by,
            comment=entry.comment,
            empty_layer=entry.empty_layer,
        )

        if not entry.empty_layer and layer_index < len(layers):
            layer = layers[layer_index]
            item.size = layer.size
            item.id = layer.digest
            layer_index += 1

        items.append(item)

    return items


def build_image_info(
    repository: str,
    tag: str,
    manifest: Manifest,
    digest: Optional[str],
    config_blob: Optional[ConfigBlob] = None
) -> ImageInfo:
    """Denormalize a manifest and (optionally) its config blob into ImageInfo."""
    info = ImageInfo(
        image_name=repository,
        tag=tag,
        digest=digest or "",
        size=compute_image_size(manifest),
        layers=len(manifest.layers or []),
    )

    if config_blob is None:
        return info

    info.created = config_blob.created
    info.architecture = config_blob.architecture
    info.os = config_blob.os
    info.id = config_blob.id

    container_config = config_blob.config
    if container_config is not None:
        info.cmd = container_config.cmd
        info.env = container_config.env
        info.working_dir = container_config.working_dir
        info.labels = container_config.labels
        if container_config.exposed_ports:
            info.exposed_ports = list(container_config.exposed_ports.keys())

    if config_blob.history is not None and manifest.layers is not None:
        info.history = reconcile_history(config_blob.history, manifest.layers)

    return info


class RegistryService:
    """Business-level registry operations built on RegistryClient"""

    def __init__(self, client: RegistryClient, catalog_limit: int = DEFAULT_CATALOG_LIMIT):
        self.client = client
        self.catalog_limit = catalog_limit

    async def close(self):
        await self.client.close()

    async def __aenter__(self) -> "RegistryService":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def get_image_info(self, repository: str, tag: str) -> ImageInfo:
        """
        Resolve one tag into ImageInfo.

        Manifest failures propagate. Config blob failures are logged and the
        result carries only the manifest-derived fields.
        """
        manifest_result = await self.client.get_manifest(repository, tag)
        manifest = manifest_result.data

        config_blob = None
        config_digest = manifest.config.digest if manifest.config else None
        if config_digest:
            try:
                config_blob = (await self.client.get_config_blob(repository, config_digest)).data
            except Exception as e:
                logger.error(f"Failed to fetch config blob {config_digest} for {repository}:{tag}: {e}")
        elif manifest.is_index:
            logger.debug(f"Manifest list for {repository}:{tag}, no config blob to fetch")

        info = build_image_info(repository, tag, manifest, manifest_result.content_digest, config_blob)
        logger.debug(f"Resolved {repository}:{tag} → {short_digest(info.digest)} ({format_binary_size(info.size)})")
        return info

    async def get_tags_info(self, repository: str, tags: List[str]) -> List[ImageInfo]:
        """ImageInfo for every tag, in order. Any single failure fails the batch."""
        return list(await asyncio.gather(*(self.get_image_info(repository, tag) for tag in tags)))

    async def list_repositories(
        self,
        size: Optional[int] = None,
        last: Optional[str] = None
    ) -> List[RepositoryTags]:
        """
        One catalog page, each repository with its tag list.

        A failing tag list fails the whole page.
        """
        response = await self.client.list_repositories(n=size or self.catalog_limit, last=last)
        result = [RepositoryTags(repo=name) for name in response.data.repositories or []]

        async def fill_tags(entry: RepositoryTags):
            tags_response = await self.client.list_tags(entry.repo)
            entry.tags = tags_response.data.tags or []

        await asyncio.gather(*(fill_tags(entry) for entry in result))
        return result

    async def list_image_tags(self, image_name: str) -> List[ImageInfo]:
        """
        ImageInfo for every tag of a repository.

        A tag that cannot be resolved yields ImageInfo.placeholder() instead of
        failing the listing.
        """
        tags_response = await self.client.list_tags(image_name)
        tags = tags_response.data.tags or []
        logger.debug(f"Received {len(tags)} tags for {image_name}")

        async def resolve(tag: str) -> ImageInfo:
            try:
                return await self.get_image_info(image_name, tag)
            except Exception as e:
                logger.error(f"Failed to fetch info for tag {image_name}:{tag}: {e}")
                return ImageInfo.placeholder(image_name, tag)

        return list(await asyncio.gather(*(resolve(tag) for tag in tags)))

    async def delete_image_tag(self, repository: str, tag: str):
        await self.client.delete_tag(repository, tag)
        logger.info(f"Deleted tag {repository}:{tag}")


def create_registry_service(
    registry_url: Optional[str] = None,
    resolve_credential: Optional[CredentialResolver] = None
) -> RegistryService:
    """
    Build cache → transport → client → service from AppConfig.

    Each call gets its own DigestCache, so separate services never share
    cached responses.
    """
    from config.settings import AppConfig

    auth = None
    if AppConfig.USERNAME:
        auth = aiohttp.BasicAuth(AppConfig.USERNAME, AppConfig.PASSWORD or "")

    if resolve_credential is None and AppConfig.USERNAME:
        resolve_credential = TokenEndpointResolver(AppConfig.USERNAME, AppConfig.PASSWORD)

    transport = RegistryTransport(
        cache=DigestCache(SessionStore()),
        resolve_credential=resolve_credential,
        with_credentials=AppConfig.WITH_CREDENTIALS,
        auth=auth,
        origin=AppConfig.ORIGIN,
    )
    client = RegistryClient(registry_url or AppConfig.REGISTRY_URL, transport)
    return RegistryService(client, catalog_limit=AppConfig.CATALOG_ELEMENTS_LIMIT)
