"""Docker image to ACI conversion pipeline."""

import logging

import aiohttp

from .core.reference import parse_reference
from .core.session import create_session
from .core.types import ConversionState, ConverterConfig, ImageReference, RepoData
from .exceptions import ParseError
from .importer import import_layer
from .operations.registry import get_ancestry, get_image_id_from_tag, get_repo_data
from .store import ContentStore, FileSystemStore

logger = logging.getLogger(__name__)


class ConversionPipeline:
    """Converts every layer of an image, oldest first, into a chain of ACIs.

    Layers are imported strictly one after another: each manifest depends on
    the store identifier of the layer before it.
    """

    def __init__(
        self,
        config: ConverterConfig | None = None,
        store: ContentStore | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config or ConverterConfig()
        self.store = store if store is not None else FileSystemStore(self.config.store_dir)
        self.session = session
        self.state = ConversionState.RESOLVING
        self.current_layer: int | None = None
        self.reference: ImageReference | None = None
        self.repo_data: RepoData | None = None
        self.image_id: str | None = None
        self.ancestry: list[str] = []
        self.converted: list[str] = []

    def _transition(self, state: ConversionState) -> None:
        logger.debug("Pipeline state %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(self, reference: str) -> str:
        """Convert ``reference`` and return the store identifier of its image.

        Raises:
            Docker2ACIError: From whichever stage failed first
        """
        owns_session = self.session is None
        if owns_session:
            self.session = await create_session(self.config)

        try:
            self._transition(ConversionState.RESOLVING)
            await self._resolve(reference)
            self._transition(ConversionState.ANCESTRY_FETCHED)
            result = await self._import_all()
            self._transition(ConversionState.DONE)
            return result
        except Exception as e:
            logger.debug("Conversion failed while %s: %s", self.state.value, e)
            self._transition(ConversionState.FAILED)
            raise
        finally:
            if owns_session:
                await self.session.close()
                self.session = None

    async def _resolve(self, reference: str) -> None:
        self.reference = parse_reference(reference, self.config)
        ref = self.reference

        self.repo_data = await get_repo_data(
            self.session, ref.index_host, ref.image_name, self.config
        )
        endpoint = self.repo_data.endpoint

        self.image_id = await get_image_id_from_tag(
            self.session, endpoint, ref.image_name, ref.tag, self.repo_data.tokens
        )
        logger.info("%s resolved to image %s", ref, self.image_id)

        ancestry = await get_ancestry(
            self.session, self.image_id, endpoint, self.repo_data.tokens
        )
        if not ancestry:
            raise ParseError(f"Empty ancestry for image {self.image_id}")

        # Registry returns newest first; build order is oldest first
        self.ancestry = list(reversed(ancestry))

    async def _import_all(self) -> str:
        self._transition(ConversionState.IMPORTING)
        result = ""
        parent_image_id = ""

        for index, layer_id in enumerate(self.ancestry):
            self.current_layer = index
            logger.info("Importing layer %d/%d: %s", index + 1, len(self.ancestry), layer_id)

            converted = await import_layer(
                self.session,
                layer_id,
                self.repo_data,
                self.reference,
                self.store,
                parent_image_id,
                self.config,
            )
            self.converted.append(converted)

            if layer_id == self.image_id:
                result = converted
            parent_image_id = converted

        return result


async def convert(
    reference: str,
    config: ConverterConfig | None = None,
    store: ContentStore | None = None,
    session: aiohttp.ClientSession | None = None,
) -> str:
    """Docker 이미지를 ACI 체인으로 변환합니다.

    Args:
        reference: ``[REGISTRYURL/]IMAGE_NAME[:TAG]`` (예: "busybox",
            "quay.io/coreos/etcd:v2.0.0")
        config: Converter configuration (기본값: ConverterConfig())
        store: Content store (기본값: FileSystemStore(config.store_dir))
        session: Optional aiohttp session to reuse

    Returns:
        str: Store identifier of the requested image's top layer

    Raises:
        Docker2ACIError: 변환 실패 시

    Examples:
        image_id = await convert("busybox")
        print(image_id)  # sha512-...
    """
    pipeline = ConversionPipeline(config=config, store=store, session=session)
    return await pipeline.run(reference)
