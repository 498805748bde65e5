"""Image reference parsing."""

from ..exceptions import ImageReferenceError
from .types import ConverterConfig, ImageReference


def parse_reference(arg: str, config: ConverterConfig | None = None) -> ImageReference:
    """``[REGISTRYURL/]IMAGE_NAME[:TAG]`` 문자열을 ImageReference로 파싱합니다.

    The first path component is treated as an index host only when it
    contains a dot; otherwise the whole string names an image on the default
    index.

    Args:
        arg: Reference string (e.g. "quay.io/coreos/etcd:v2.0.0", "busybox")
        config: Converter configuration supplying the default index and tag

    Returns:
        ImageReference: Parsed reference

    Raises:
        ImageReferenceError: If the string is empty or names no image

    Examples:
        parse_reference("quay.io/foo/bar:v1")
        # ImageReference(index_host="quay.io", image_name="foo/bar", tag="v1")

        parse_reference("busybox")
        # ImageReference(index_host="index.docker.io", image_name="busybox", tag="latest")
    """
    config = config or ConverterConfig()
    arg = arg.strip()
    if not arg:
        raise ImageReferenceError("Empty image reference")

    index_host = config.default_index
    tag = config.default_tag

    parts = arg.split("/", 1)
    if len(parts) > 1 and "." in parts[0]:
        index_host, app_string = parts
    else:
        app_string = arg

    image_name = app_string
    app_parts = app_string.split(":")
    if len(app_parts) > 1:
        tag = app_parts[-1]
        image_name = ":".join(app_parts[:-1])

    if not image_name or not tag:
        raise ImageReferenceError(f"Invalid image reference: {arg}")

    return ImageReference(index_host=index_host, image_name=image_name, tag=tag)
