"""App Container Image manifest, layout and archive support."""

from .archive import build_aci, iter_layer_entries
from .layout import validate_layout
from .manifest import ImageManifest, generate_manifest

__all__ = ["build_aci", "iter_layer_entries", "validate_layout", "ImageManifest", "generate_manifest"]
