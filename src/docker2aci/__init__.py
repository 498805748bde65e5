"""docker2aci - Convert Docker Registry v1 images into App Container Images."""

__version__ = "0.1.0"

from .aci.manifest import ImageManifest, generate_manifest
from .core.reference import parse_reference
from .core.types import ConversionState, ConverterConfig, ImageReference, RepoData
from .exceptions import (
    Docker2ACIError,
    ExtractionError,
    FilesystemError,
    ImageReferenceError,
    LayoutError,
    ManifestError,
    ParseError,
    RegistryConnectionError,
    RegistryError,
    StoreError,
    UnsupportedEntryError,
)
from .importer import import_layer
from .pipeline import ConversionPipeline, convert
from .store import ContentStore, FileSystemStore

__all__ = [
    "convert",
    "ConversionPipeline",
    "ConversionState",
    "ConverterConfig",
    "ContentStore",
    "FileSystemStore",
    "ImageManifest",
    "ImageReference",
    "RepoData",
    "generate_manifest",
    "import_layer",
    "parse_reference",
    "Docker2ACIError",
    "RegistryError",
    "RegistryConnectionError",
    "ParseError",
    "ImageReferenceError",
    "ManifestError",
    "FilesystemError",
    "LayoutError",
    "ExtractionError",
    "StoreError",
    "UnsupportedEntryError",
]
