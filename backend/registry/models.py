"""
Registry Models
Pydantic models for registry v2 wire documents and the derived ImageInfo record
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"

# Most specific first
MANIFEST_MEDIA_TYPES = (
    MEDIA_TYPE_OCI_MANIFEST,
    MEDIA_TYPE_DOCKER_MANIFEST,
    MEDIA_TYPE_DOCKER_MANIFEST_LIST,
    MEDIA_TYPE_OCI_INDEX,
)


class _WireModel(BaseModel):
    """Registry documents carry more fields than we read; keep them."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CatalogResponse(_WireModel):
    repositories: Optional[List[str]] = None


class TagsResponse(_WireModel):
    name: Optional[str] = None
    tags: Optional[List[str]] = None


class Platform(_WireModel):
    architecture: Optional[str] = None
    os: Optional[str] = None
    variant: Optional[str] = None


class Descriptor(_WireModel):
    """Content descriptor pointing at a blob or child manifest by digest"""
    media_type: Optional[str] = Field(None, alias="mediaType")
    size: Optional[int] = 0
    digest: Optional[str] = None
    platform: Optional[Platform] = None


class Manifest(_WireModel):
    """Image manifest or manifest list / index"""
    schema_version: Optional[int] = Field(None, alias="schemaVersion")
    media_type: Optional[str] = Field(None, alias="mediaType")
    config: Optional[Descriptor] = None
    layers: Optional[List[Descriptor]] = None
    manifests: Optional[List[Descriptor]] = None

    @property
    def is_index(self) -> bool:
        return self.media_type in (MEDIA_TYPE_DOCKER_MANIFEST_LIST, MEDIA_TYPE_OCI_INDEX) or (
            self.manifests is not None and self.layers is None
        )


class ContainerConfig(_WireModel):
    env: Optional[List[str]] = Field(None, alias="Env")
    cmd: Optional[List[str]] = Field(None, alias="Cmd")
    working_dir: Optional[str] = Field(None, alias="WorkingDir")
    labels: Optional[Dict[str, str]] = Field(None, alias="Labels")
    exposed_ports: Optional[Dict[str, Any]] = Field(None, alias="ExposedPorts")


class HistoryEntry(_WireModel):
    created: Optional[str] = None
    created_by: Optional[str] = None
    comment: Optional[str] = None
    empty_layer: Optional[bool] = None


class RootFS(_WireModel):
    type: Optional[str] = None
    diff_ids: Optional[List[str]] = None


class ConfigBlob(_WireModel):
    """Image configuration document referenced by manifest.config"""
    created: Optional[str] = None
    architecture: Optional[str] = None
    os: Optional[str] = None
    id: Optional[str] = None
    config: Optional[ContainerConfig] = None
    rootfs: Optional[RootFS] = None
    history: Optional[List[HistoryEntry]] = None


class ImageHistoryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    created: Optional[str] = None
    created_by: Optional[str] = None
    comment: Optional[str] = None
    empty_layer: Optional[bool] = None
    size: Optional[int] = None
    id: Optional[str] = None


class ImageInfo(BaseModel):
    """
    Denormalized view of one tag: manifest fields plus its config blob.

    Built fresh for every request and never persisted. Field aliases are the
    camelCase names that presentation code consumes.
    """
    model_config = ConfigDict(populate_by_name=True)

    image_name: str = Field(..., alias="imageName")
    tag: str
    digest: str = ""
    size: int = 0
    created: Optional[str] = None
    architecture: Optional[str] = None
    os: Optional[str] = None
    layers: int = 0
    id: Optional[str] = None
    cmd: Optional[List[str]] = None
    env: Optional[List[str]] = None
    working_dir: Optional[str] = Field(None, alias="workingDir")
    labels: Optional[Dict[str, str]] = None
    exposed_ports: Optional[List[str]] = Field(None, alias="exposedPorts")
    history: Optional[List[ImageHistoryItem]] = None

    @classmethod
    def placeholder(cls, image_name: str, tag: str) -> "ImageInfo":
        """Zero-value record used when a tag cannot be resolved."""
        return cls(image_name=image_name, tag=tag, digest="", size=0, layers=0)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
