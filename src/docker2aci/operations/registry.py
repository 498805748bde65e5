"""Docker Registry v1 operations."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiohttp

from ..core.session import auth_headers, check_response, parse_json_response
from ..core.types import ConverterConfig, RepoData
from ..exceptions import ParseError, RegistryConnectionError

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Docker-Token"
ENDPOINTS_HEADER = "X-Docker-Endpoints"
SIZE_HEADER = "X-Docker-Size"
API_VERSION_PATH = "v1"

# Returned by get_remote_image_json when the registry sends no size header
UNKNOWN_SIZE = -1


def make_endpoints_list(headers: list[str], scheme: str = "https") -> list[str]:
    """Turn ``X-Docker-Endpoints`` header values into registry base URLs."""
    endpoints = []
    for value in headers:
        for endpoint in value.split(","):
            endpoints.append(f"{scheme}://{endpoint.strip()}/{API_VERSION_PATH}/")
    return endpoints


@asynccontextmanager
async def _request(
    session: aiohttp.ClientSession, url: str, headers: dict[str, str]
) -> AsyncIterator[aiohttp.ClientResponse]:
    """Issue a GET and translate transport failures into registry errors."""
    try:
        async with session.get(url, headers=headers) as resp:
            check_response(resp)
            yield resp
    except aiohttp.ClientError as e:
        raise RegistryConnectionError(
            f"Request failed: {e}, URL: {url}", url=url
        ) from e


async def get_repo_data(
    session: aiohttp.ClientSession,
    index_host: str,
    repo_name: str,
    config: ConverterConfig | None = None,
) -> RepoData:
    """Discover tokens and endpoints for a repository.

    Args:
        session: HTTP session
        index_host: Index host (e.g. "index.docker.io")
        repo_name: Repository name (e.g. "library/busybox")
        config: Converter configuration supplying the URL scheme

    Returns:
        RepoData: Tokens (possibly empty) and candidate endpoints

    Raises:
        RegistryError: On any non-200 response
    """
    config = config or ConverterConfig()
    url = f"{config.scheme}://{index_host}/{API_VERSION_PATH}/repositories/{repo_name}/images"

    async with _request(session, url, {TOKEN_HEADER: "true"}) as resp:
        tokens = resp.headers.getall(TOKEN_HEADER, [])
        endpoint_headers = resp.headers.getall(ENDPOINTS_HEADER, [])

    # Without the header, assume the index also serves the registry API
    endpoints = make_endpoints_list(endpoint_headers or [index_host], config.scheme)

    logger.debug("Repository %s: %d token(s), endpoints %s", repo_name, len(tokens), endpoints)
    return RepoData(tokens=list(tokens), endpoints=endpoints)


async def get_image_id_from_tag(
    session: aiohttp.ClientSession,
    endpoint: str,
    repo_name: str,
    tag: str,
    tokens: list[str],
) -> str:
    """Resolve a tag to an image ID.

    Raises:
        RegistryError: On any non-200 response
        ParseError: If the body is not a JSON string
    """
    url = f"{endpoint}repositories/{repo_name}/tags/{tag}"
    async with _request(session, url, auth_headers(tokens)) as resp:
        image_id = await parse_json_response(resp)

    if not isinstance(image_id, str):
        raise ParseError(f"Expected image ID string from {url}, got {image_id!r}")
    return image_id


async def get_ancestry(
    session: aiohttp.ClientSession, image_id: str, endpoint: str, tokens: list[str]
) -> list[str]:
    """Return the lineage of an image, newest first.

    Raises:
        RegistryError: On any non-200 response
        ParseError: If the body is not a JSON array of strings
    """
    url = f"{endpoint}images/{image_id}/ancestry"
    async with _request(session, url, auth_headers(tokens)) as resp:
        ancestry = await parse_json_response(resp)

    if not isinstance(ancestry, list) or not all(isinstance(i, str) for i in ancestry):
        raise ParseError(f"Expected ancestry list from {url}")
    return ancestry


async def get_remote_image_json(
    session: aiohttp.ClientSession, image_id: str, endpoint: str, tokens: list[str]
) -> tuple[bytes, int]:
    """Fetch the raw JSON metadata of one layer.

    Returns:
        tuple[bytes, int]: JSON body and the advertised layer size, or
        ``UNKNOWN_SIZE`` when the registry does not send one

    Raises:
        RegistryError: On any non-200 response
        ParseError: If the size header is not an integer
    """
    url = f"{endpoint}images/{image_id}/json"
    async with _request(session, url, auth_headers(tokens)) as resp:
        size = UNKNOWN_SIZE
        size_header = resp.headers.get(SIZE_HEADER)
        if size_header:
            try:
                size = int(size_header)
            except ValueError as e:
                raise ParseError(f"Invalid {SIZE_HEADER} header: {size_header!r}") from e

        body = await resp.read()

    return body, size


async def get_remote_layer(
    session: aiohttp.ClientSession,
    image_id: str,
    endpoint: str,
    tokens: list[str],
    size_hint: int = UNKNOWN_SIZE,
) -> aiohttp.ClientResponse:
    """Open a streamed download of one layer blob.

    The caller owns the returned response and must release it, typically
    with ``async with``.

    Raises:
        RegistryError: On any non-200 response
    """
    url = f"{endpoint}images/{image_id}/layer"
    logger.info("%s: Downloading layer", image_id)
    if size_hint != UNKNOWN_SIZE:
        logger.debug("%s: expecting %d bytes", image_id, size_hint)

    try:
        resp = await session.get(url, headers=auth_headers(tokens))
    except aiohttp.ClientError as e:
        raise RegistryConnectionError(f"Request failed: {e}, URL: {url}", url=url) from e

    try:
        check_response(resp)
    except Exception:
        resp.release()
        raise
    return resp
