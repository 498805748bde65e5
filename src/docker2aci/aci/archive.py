"""ACI archive builder."""

import io
import logging
import os
import stat
import tarfile
from pathlib import Path
from typing import Iterator, NamedTuple

from ..exceptions import FilesystemError, UnsupportedEntryError
from .layout import validate_layout
from .manifest import MANIFEST_FILE, ImageManifest

logger = logging.getLogger(__name__)


class LayerEntry(NamedTuple):
    """One filesystem entry of a layer directory, ready to be archived."""

    path: Path
    header: tarfile.TarInfo

    @property
    def has_content(self) -> bool:
        return self.header.type == tarfile.REGTYPE


def _walk(directory: Path, prefix: str) -> Iterator[tuple[Path, str, os.stat_result]]:
    # Lexical order within each directory, parents before children
    for name in sorted(os.listdir(directory)):
        path = directory / name
        relpath = prefix + name
        st = path.lstat()
        yield path, relpath, st
        if stat.S_ISDIR(st.st_mode):
            yield from _walk(path, relpath + "/")


def make_header(
    path: Path, relpath: str, st: os.stat_result, inodes: dict[int, str]
) -> tarfile.TarInfo:
    """Build the tar header for one entry.

    ``inodes`` maps inode numbers to the path they were first archived
    under; a later path sharing an inode becomes a zero-size hard link.

    Raises:
        UnsupportedEntryError: For sockets and other unrepresentable kinds
    """
    header = tarfile.TarInfo(relpath)
    header.mode = stat.S_IMODE(st.st_mode)
    header.uid = st.st_uid
    header.gid = st.st_gid
    header.mtime = int(st.st_mtime)

    mode = st.st_mode
    if stat.S_ISREG(mode):
        header.type = tarfile.REGTYPE
        header.size = st.st_size
    elif stat.S_ISDIR(mode):
        header.type = tarfile.DIRTYPE
    elif stat.S_ISLNK(mode):
        header.type = tarfile.SYMTYPE
        header.linkname = os.readlink(path)
    elif stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        header.type = tarfile.CHRTYPE if stat.S_ISCHR(mode) else tarfile.BLKTYPE
        header.devmajor = os.major(st.st_rdev)
        header.devminor = os.minor(st.st_rdev)
    elif stat.S_ISFIFO(mode):
        header.type = tarfile.FIFOTYPE
    else:
        raise UnsupportedEntryError(f"Cannot archive {path}: unsupported file type {oct(mode)}")

    if not stat.S_ISDIR(mode) and st.st_nlink > 1:
        first_path = inodes.get(st.st_ino)
        if first_path is None:
            inodes[st.st_ino] = relpath
        else:
            header.type = tarfile.LNKTYPE
            header.linkname = first_path
            header.size = 0

    return header


def iter_layer_entries(layer_dir: Path) -> Iterator[LayerEntry]:
    """Walk a layer directory, yielding archive entries.

    The root itself and its top-level ``manifest`` are skipped; entry names
    are relative to ``layer_dir``.
    """
    layer_dir = Path(layer_dir)
    inodes: dict[int, str] = {}
    for path, relpath, st in _walk(layer_dir, ""):
        if relpath == MANIFEST_FILE:
            continue
        yield LayerEntry(path, make_header(path, relpath, st, inodes))


def _add_manifest(tar: tarfile.TarFile, manifest: ImageManifest) -> None:
    data = manifest.to_json()
    header = tarfile.TarInfo(MANIFEST_FILE)
    header.mode = 0o644
    header.size = len(data)
    tar.addfile(header, io.BytesIO(data))


def build_aci(manifest: ImageManifest, layer_dir: Path, target_path: Path) -> Path:
    """레이어 디렉토리를 ACI 아카이브로 만듭니다.

    Args:
        manifest: Manifest written as the first archive entry
        layer_dir: Directory holding ``rootfs/`` (and optionally ``manifest``)
        target_path: Path of the uncompressed tar to create

    Returns:
        Path: ``target_path``

    Raises:
        LayoutError: If ``layer_dir`` fails layout validation; nothing is
            written in that case
        FilesystemError: On I/O errors while building
        UnsupportedEntryError: If the tree holds an unrepresentable entry
    """
    layer_dir = Path(layer_dir)
    target_path = Path(target_path)

    validate_layout(layer_dir, manifest)

    count = 0
    try:
        with tarfile.open(target_path, "w", format=tarfile.PAX_FORMAT) as tar:
            _add_manifest(tar, manifest)
            for entry in iter_layer_entries(layer_dir):
                if entry.has_content:
                    with open(entry.path, "rb") as f:
                        tar.addfile(entry.header, f)
                else:
                    tar.addfile(entry.header)
                count += 1
    except (OSError, tarfile.TarError) as e:
        target_path.unlink(missing_ok=True)
        raise FilesystemError(f"Unable to build image {target_path}: {e}") from e
    except UnsupportedEntryError:
        target_path.unlink(missing_ok=True)
        raise

    logger.debug("Built %s with %d entries", target_path, count + 1)
    return target_path
