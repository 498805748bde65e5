"""ACI layer directory layout validation."""

import json
import stat
from pathlib import Path

from ..exceptions import LayoutError
from .manifest import MANIFEST_FILE, ROOTFS_DIR, ImageManifest


def is_rootfs_dir(path: Path) -> bool:
    """Check that rootfs exists and is a real directory."""
    try:
        return stat.S_ISDIR(path.lstat().st_mode)
    except FileNotFoundError:
        return False


def read_manifest_file(path: Path) -> dict:
    """Load an on-disk manifest, rejecting anything but a JSON object."""
    if not stat.S_ISREG(path.lstat().st_mode):
        raise LayoutError(f"{MANIFEST_FILE} is not a regular file: {path}")
    try:
        data = json.loads(path.read_bytes())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise LayoutError(f"Unable to load image manifest {path}: {e}") from e
    if not isinstance(data, dict):
        raise LayoutError(f"Image manifest {path} is not a JSON object")
    return data


def validate_layout(layer_dir: Path, manifest: ImageManifest) -> None:
    """Validate a layer directory before it is archived.

    The directory may contain only ``rootfs/`` and ``manifest``. An existing
    ``manifest`` must describe the same image as ``manifest``, since the
    archive carries the latter in its place.

    Raises:
        LayoutError: If the layout is unusable
    """
    layer_dir = Path(layer_dir)
    if not layer_dir.is_dir():
        raise LayoutError(f"Layer directory does not exist: {layer_dir}")

    if not is_rootfs_dir(layer_dir / ROOTFS_DIR):
        raise LayoutError(f"Missing {ROOTFS_DIR} directory in {layer_dir}")

    for entry in sorted(layer_dir.iterdir()):
        if entry.name not in (MANIFEST_FILE, ROOTFS_DIR):
            raise LayoutError(f"Unrecognized file in layout: {entry.name}")

    manifest_path = layer_dir / MANIFEST_FILE
    if manifest_path.exists() or manifest_path.is_symlink():
        if read_manifest_file(manifest_path) != manifest.to_dict():
            raise LayoutError(
                f"{manifest_path} does not match the manifest being archived"
            )
