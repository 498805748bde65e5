"""Conversion of a single Docker layer into a stored ACI."""

import asyncio
import logging
import os
import shutil
import stat
import tarfile
import tempfile
from pathlib import Path

import aiofiles
import aiohttp

from .aci.archive import build_aci
from .aci.manifest import MANIFEST_FILE, ROOTFS_DIR, ImageManifest, generate_manifest
from .core.types import ConverterConfig, ImageReference, LayerMetadata, RepoData
from .exceptions import ExtractionError, FilesystemError, RegistryConnectionError
from .operations.registry import get_remote_image_json, get_remote_layer
from .store import ContentStore

logger = logging.getLogger(__name__)

STAGING_PREFIX = "docker2aci-"


def _make_writable(function, path, exc) -> None:
    # Extracted directories may be read-only; open them up and retry once
    parent = os.path.dirname(path)
    os.chmod(parent, os.stat(parent).st_mode | stat.S_IWUSR | stat.S_IXUSR)
    if os.path.isdir(path) and not os.path.islink(path):
        os.chmod(path, os.stat(path).st_mode | stat.S_IWUSR | stat.S_IXUSR | stat.S_IRUSR)
    function(path)


class StagingTree:
    """Temporary directory holding one layer while it is converted.

    Layout::

        <root>/layer.tar        downloaded blob
        <root>/layer/manifest   synthesized manifest
        <root>/layer/rootfs/    extracted filesystem
        <root>/<id>.aci         built archive
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.layer_dir = root / "layer"
        self.rootfs = self.layer_dir / ROOTFS_DIR
        self.blob_path = root / "layer.tar"

    @classmethod
    def create(cls, tmp_dir: str | None = None) -> "StagingTree":
        """Allocate a fresh staging tree.

        Raises:
            FilesystemError: If the directories cannot be created
        """
        try:
            root = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=tmp_dir))
        except OSError as e:
            raise FilesystemError(f"Error creating dir: {e}") from e

        tree = cls(root)
        try:
            tree.rootfs.mkdir(mode=0o700, parents=True)
        except OSError as e:
            tree.cleanup()
            raise FilesystemError(f"Error creating dir: {tree.rootfs}: {e}") from e
        return tree

    def aci_path(self, layer_id: str) -> Path:
        return self.root / f"{layer_id}.aci"

    def cleanup(self) -> None:
        try:
            shutil.rmtree(self.root, onexc=_make_writable)
        except OSError as e:
            raise FilesystemError(f"Error removing dir: {self.root}: {e}") from e

    def __enter__(self) -> "StagingTree":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self.cleanup()
        except FilesystemError as e:
            if exc_type is None:
                raise
            # Keep the error that aborted the import
            logger.warning("%s (while handling %s)", e, exc_type.__name__)


class _LayerTarFile(tarfile.TarFile):
    """TarFile that never applies ownership from the archive."""

    def chown(self, tarinfo, targetpath, numeric_owner):
        pass


def _layer_member_filter(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo | None:
    """Keep members as-is, refusing any that would land outside ``dest_path``."""
    dest = os.path.realpath(dest_path)
    name = member.name.lstrip("/")
    if not name or name == ".":
        return None

    # Resolve the parent only; the member itself may be a symlink being replaced
    parent = os.path.realpath(os.path.join(dest, os.path.dirname(name)))
    target = os.path.join(parent, os.path.basename(name))
    if os.path.commonpath([dest, target]) != dest:
        raise ExtractionError(f"Layer member {member.name!r} escapes the rootfs")

    if member.islnk():
        linkname = member.linkname.lstrip("/")
        link_target = os.path.realpath(os.path.join(dest, linkname))
        if os.path.commonpath([dest, link_target]) != dest:
            raise ExtractionError(f"Hard link {member.name!r} points outside the rootfs")
        # tarfile links against dest joined with linkname, so keep it relative
        if name != member.name or linkname != member.linkname:
            return member.replace(name=name, linkname=linkname, deep=False)
        return member

    if name != member.name:
        return member.replace(name=name, deep=False)
    return member


def extract_layer(blob_path: Path, rootfs: Path) -> None:
    """Unpack a (possibly compressed) layer tarball into ``rootfs``.

    Raises:
        ExtractionError: If the blob is not a readable tar archive
    """
    try:
        with _LayerTarFile.open(blob_path, "r:*") as tar:
            tar.extractall(rootfs, filter=_layer_member_filter)
    except (tarfile.TarError, OSError) as e:
        raise ExtractionError(f"Error untaring image: {e}") from e
    except KeyError as e:
        # Hard link whose target is neither on disk nor earlier in the archive
        raise ExtractionError(f"Error untaring image: {e}") from e


async def fetch_layer(
    session: aiohttp.ClientSession,
    layer_id: str,
    repo_data: RepoData,
    staging: StagingTree,
    config: ConverterConfig,
) -> LayerMetadata:
    """Download a layer's metadata and blob into the staging tree."""
    raw_json, size = await get_remote_image_json(
        session, layer_id, repo_data.endpoint, repo_data.tokens
    )
    metadata = LayerMetadata.from_json(raw_json)

    written = 0
    async with await get_remote_layer(
        session, layer_id, repo_data.endpoint, repo_data.tokens, size
    ) as resp:
        try:
            async with aiofiles.open(staging.blob_path, "wb") as out:
                async for chunk in resp.content.iter_chunked(config.chunk_size):
                    await out.write(chunk)
                    written += len(chunk)
        except aiohttp.ClientError as e:
            raise RegistryConnectionError(
                f"Error downloading layer: {e}, URL: {resp.url}", url=str(resp.url)
            ) from e
        except OSError as e:
            raise FilesystemError(f"Error saving layer {layer_id}: {e}") from e

    logger.debug("%s: downloaded %d bytes", layer_id, written)
    return metadata


async def write_manifest(manifest: ImageManifest, layer_dir: Path) -> Path:
    path = layer_dir / MANIFEST_FILE
    try:
        async with aiofiles.open(path, "wb") as f:
            await f.write(manifest.to_json())
            await f.flush()
    except OSError as e:
        raise FilesystemError(f"Error creating manifest file: {e}") from e
    return path


async def import_layer(
    session: aiohttp.ClientSession,
    layer_id: str,
    repo_data: RepoData,
    reference: ImageReference,
    store: ContentStore,
    parent_image_id: str = "",
    config: ConverterConfig | None = None,
) -> str:
    """Docker 레이어 하나를 ACI로 변환하여 저장소에 저장합니다.

    The staging tree is removed on every exit path.

    Args:
        session: HTTP session
        layer_id: Docker image ID of the layer
        repo_data: Tokens and endpoints from discovery
        reference: Reference the conversion was started from
        store: Content store receiving the archive
        parent_image_id: Store identifier of the previous layer ("" for the base)
        config: Converter configuration

    Returns:
        str: Store identifier of the converted layer

    Raises:
        RegistryError: If the registry refuses a request
        ParseError: If the layer JSON is malformed
        ManifestError: If no valid manifest can be synthesized
        FilesystemError: On staging, extraction or archive I/O errors
        StoreError: If the store rejects the archive
    """
    config = config or ConverterConfig()
    loop = asyncio.get_running_loop()

    with StagingTree.create(config.tmp_dir) as staging:
        logger.debug("%s: staging in %s", layer_id, staging.root)

        metadata = await fetch_layer(session, layer_id, repo_data, staging, config)

        await loop.run_in_executor(None, extract_layer, staging.blob_path, staging.rootfs)
        staging.blob_path.unlink()

        manifest = generate_manifest(metadata, reference, parent_image_id, config)
        await write_manifest(manifest, staging.layer_dir)

        aci_path = await loop.run_in_executor(
            None, build_aci, manifest, staging.layer_dir, staging.aci_path(layer_id)
        )

        async with aiofiles.open(aci_path, "rb") as aci_file:
            image_id = await store.ingest(aci_file)

    logger.info("%s: imported as %s", layer_id, image_id)
    return image_id
