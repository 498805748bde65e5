"""ACI image manifest model and synthesis from Docker layer metadata."""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from ..core.types import SCHEMA_VERSION, ConverterConfig, ImageReference, LayerMetadata
from ..exceptions import ManifestError

AC_KIND = "ImageManifest"
MANIFEST_FILE = "manifest"
ROOTFS_DIR = "rootfs"

AC_NAME_PATTERN = re.compile(r"^[a-z0-9]+([-._~/][a-z0-9]+)*$")
_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9._~/-]+")
_REPEATED_SEPARATORS = re.compile(r"[-._~/]{2,}")
IMAGE_HASH_PATTERN = re.compile(r"^sha512-[a-f0-9]+$")


def sanitize_ac_name(value: str) -> str:
    """Coerce an arbitrary string into a valid AC name.

    Lowercases, replaces runs of invalid characters with ``-`` and trims
    separators, so ``localhost:5000/app`` becomes ``localhost-5000/app``.

    Raises:
        ManifestError: If nothing usable remains
    """
    name = _INVALID_NAME_CHARS.sub("-", value.lower())
    name = _REPEATED_SEPARATORS.sub(lambda m: m.group(0)[0], name)
    name = name.strip("-._~/")
    if not AC_NAME_PATTERN.match(name):
        raise ManifestError(f"Cannot derive a valid AC name from {value!r}")
    return name


def validate_image_hash(image_id: str) -> str:
    if not IMAGE_HASH_PATTERN.match(image_id):
        raise ManifestError(f"Invalid image hash for dependency: {image_id!r}")
    return image_id


@dataclass
class Label:
    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}


@dataclass
class App:
    exec: list[str]
    user: str = "0"
    group: str = "0"

    def to_dict(self) -> dict[str, Any]:
        return {"exec": list(self.exec), "user": self.user, "group": self.group}


@dataclass
class Dependency:
    app: str
    image_id: str

    def to_dict(self) -> dict[str, str]:
        return {"app": self.app, "imageID": self.image_id}


@dataclass
class ImageManifest:
    """ACI image manifest."""

    name: str
    ac_version: str = SCHEMA_VERSION
    labels: list[Label] = field(default_factory=list)
    app: App | None = None
    dependencies: list[Dependency] = field(default_factory=list)
    ac_kind: str = AC_KIND

    def label(self, name: str) -> str | None:
        for label in self.labels:
            if label.name == name:
                return label.value
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "acKind": self.ac_kind,
            "acVersion": self.ac_version,
            "name": self.name,
            "labels": [label.to_dict() for label in self.labels],
        }
        if self.app is not None:
            data["app"] = self.app.to_dict()
        if self.dependencies:
            data["dependencies"] = [dep.to_dict() for dep in self.dependencies]
        return data

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")


def generate_manifest(
    layer: LayerMetadata,
    reference: ImageReference,
    parent_image_id: str = "",
    config: ConverterConfig | None = None,
) -> ImageManifest:
    """Docker 레이어 메타데이터로부터 ACI 매니페스트를 생성합니다.

    Only the Docker ``Cmd`` becomes the app exec; ``Entrypoint`` is not
    consulted.

    Args:
        layer: Parsed Docker layer JSON
        reference: Reference the conversion was started from
        parent_image_id: Store identifier of the previous layer, or "" for
            the base layer
        config: Converter configuration supplying the schema version

    Returns:
        ImageManifest: Manifest for this layer

    Raises:
        ManifestError: If the name or parent hash is invalid
    """
    config = config or ConverterConfig()
    name = sanitize_ac_name(reference.app_name)

    manifest = ImageManifest(
        name=name,
        ac_version=config.schema_version,
        labels=[Label("layer", layer.id), Label("version", reference.tag)],
    )

    if layer.config is not None and layer.config.cmd:
        manifest.app = App(exec=list(layer.config.cmd))

    if parent_image_id:
        manifest.dependencies.append(
            Dependency(app=name, image_id=validate_image_hash(parent_image_id))
        )

    return manifest
