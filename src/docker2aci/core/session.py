"""HTTP session helpers for registry access."""

import json
from typing import Any, MutableMapping

import aiohttp

from ..exceptions import ParseError, RegistryError
from .types import ConverterConfig


async def create_session(config: ConverterConfig | None = None) -> aiohttp.ClientSession:
    """Create the session shared by every request of one conversion run.

    Args:
        config: Converter configuration; ``timeout=None`` disables the
            total request timeout

    Returns:
        aiohttp.ClientSession: New session, owned by the caller
    """
    config = config or ConverterConfig()
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=config.timeout),
    )


def set_auth_token(headers: MutableMapping[str, str], tokens: list[str]) -> None:
    """Set ``Authorization: Token ...`` unless an Authorization header exists.

    Header names are compared case-insensitively.
    """
    if not any(name.lower() == "authorization" for name in headers):
        headers["Authorization"] = "Token " + ",".join(tokens)


def auth_headers(tokens: list[str], headers: dict[str, str] | None = None) -> dict[str, str]:
    """Return request headers carrying the registry token."""
    merged = dict(headers or {})
    set_auth_token(merged, tokens)
    return merged


def check_response(response: aiohttp.ClientResponse) -> None:
    """Raise RegistryError for any status other than 200."""
    if response.status != 200:
        raise RegistryError.from_status(response.status, str(response.url))


async def parse_json_response(response: aiohttp.ClientResponse) -> Any:
    """Decode a JSON body regardless of the advertised content type."""
    body = await response.read()
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"Error unmarshaling response from {response.url}: {e}") from e
