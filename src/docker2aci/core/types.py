"""Data types shared across the conversion pipeline."""

import enum
import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..exceptions import ParseError

DEFAULT_INDEX = "index.docker.io"
DEFAULT_TAG = "latest"
DEFAULT_STORE_DIR = "/var/lib/rkt"
SCHEMA_VERSION = "0.1.1"

# Docker emits RFC3339 timestamps with up to nanosecond precision
_FRACTION_PATTERN = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class ConverterConfig:
    """Settings threaded through every stage of a conversion."""

    default_index: str = DEFAULT_INDEX
    default_tag: str = DEFAULT_TAG
    store_dir: str = DEFAULT_STORE_DIR
    schema_version: str = SCHEMA_VERSION
    scheme: str = "https"
    timeout: float | None = None
    tmp_dir: str | None = None
    chunk_size: int = 64 * 1024

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ConverterConfig":
        """Build a config from ``DOCKER2ACI_*`` environment variables."""
        env = os.environ if environ is None else environ
        timeout = env.get("DOCKER2ACI_TIMEOUT")
        try:
            timeout_value = float(timeout) if timeout else None
        except ValueError as e:
            raise ParseError(f"Invalid DOCKER2ACI_TIMEOUT: {timeout}") from e

        return cls(
            default_index=env.get("DOCKER2ACI_INDEX", DEFAULT_INDEX),
            store_dir=env.get("DOCKER2ACI_STORE_DIR", DEFAULT_STORE_DIR),
            scheme=env.get("DOCKER2ACI_SCHEME", "https"),
            timeout=timeout_value,
            tmp_dir=env.get("DOCKER2ACI_TMPDIR") or None,
        )


@dataclass(frozen=True)
class ImageReference:
    """A parsed ``[INDEX/]NAME[:TAG]`` reference."""

    index_host: str
    image_name: str
    tag: str

    @property
    def app_name(self) -> str:
        return f"{self.index_host}/{self.image_name}"

    def __str__(self) -> str:
        return f"{self.app_name}:{self.tag}"


@dataclass
class RepoData:
    """Tokens and endpoints returned by index discovery."""

    tokens: list[str] = field(default_factory=list)
    endpoints: list[str] = field(default_factory=list)

    @property
    def endpoint(self) -> str:
        # Only the first endpoint is ever used; there is no failover.
        return self.endpoints[0]


@dataclass
class DockerConfig:
    """Runtime configuration embedded in a Docker layer's JSON."""

    cmd: list[str] = field(default_factory=list)
    entrypoint: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    working_dir: str = ""
    user: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DockerConfig":
        return cls(
            cmd=list(data.get("Cmd") or []),
            entrypoint=list(data.get("Entrypoint") or []),
            env=list(data.get("Env") or []),
            working_dir=data.get("WorkingDir") or "",
            user=data.get("User") or "",
        )


@dataclass
class LayerMetadata:
    """Docker v1 image JSON for a single layer."""

    id: str
    parent: str = ""
    comment: str = ""
    created: datetime | None = None
    container: str = ""
    docker_version: str = ""
    author: str = ""
    config: DockerConfig | None = None
    architecture: str = ""
    os: str = ""
    checksum: str = ""
    size: int = 0

    @classmethod
    def from_json(cls, raw: bytes) -> "LayerMetadata":
        """Parse the ``images/{id}/json`` response body.

        Raises:
            ParseError: If the body is not a JSON object with an ``id``
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Error unmarshaling layer data: {e}") from e

        if not isinstance(data, dict) or not data.get("id"):
            raise ParseError("Error unmarshaling layer data: missing image id")

        config = data.get("config")
        if config is not None and not isinstance(config, dict):
            raise ParseError("Error unmarshaling layer data: config is not an object")

        return cls(
            id=data["id"],
            parent=data.get("parent") or "",
            comment=data.get("comment") or "",
            created=parse_created_timestamp(data.get("created")),
            container=data.get("container") or "",
            docker_version=data.get("docker_version") or "",
            author=data.get("author") or "",
            config=DockerConfig.from_dict(config) if config else None,
            architecture=data.get("architecture") or "",
            os=data.get("os") or "",
            checksum=data.get("checksum") or "",
            size=data["Size"] if isinstance(data.get("Size"), int) else 0,
        )


def parse_created_timestamp(value: str | None) -> datetime | None:
    """Parse a Docker ``created`` timestamp, truncating sub-microsecond digits."""
    if not value:
        return None

    value = value.replace("Z", "+00:00")
    value = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ParseError(f"Invalid created timestamp: {value}") from e


class ConversionState(enum.Enum):
    """States of a single conversion run."""

    RESOLVING = "resolving"
    ANCESTRY_FETCHED = "ancestry_fetched"
    IMPORTING = "importing"
    DONE = "done"
    FAILED = "failed"
