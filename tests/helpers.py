"""Test helpers: an in-process Docker Registry v1 and layer tarball builders."""

import io
import json
import tarfile

from aiohttp import web


def make_layer_tar(
    files: dict[str, bytes] | None = None,
    dirs: list[str] | None = None,
    symlinks: dict[str, str] | None = None,
    hardlinks: dict[str, str] | None = None,
) -> bytes:
    """Build an uncompressed layer tarball in memory."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name in dirs or []:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)

        for name, data in (files or {}).items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            info.uid = 1234
            info.gid = 1234
            tar.addfile(info, io.BytesIO(data))

        for name, target in (symlinks or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)

        for name, target in (hardlinks or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.LNKTYPE
            info.linkname = target
            tar.addfile(info)

    return buf.getvalue()


def read_archive(fileobj) -> tuple[list[tarfile.TarInfo], dict[str, bytes]]:
    """Return the members of an ACI and the contents of its regular files."""
    contents = {}
    with tarfile.open(fileobj=fileobj, mode="r") as tar:
        members = tar.getmembers()
        for member in members:
            if member.isreg():
                contents[member.name] = tar.extractfile(member).read()
    return members, contents


def read_manifest(fileobj) -> dict:
    with tarfile.open(fileobj=fileobj, mode="r") as tar:
        return json.loads(tar.extractfile("manifest").read())


class FakeRegistry:
    """Minimal Docker Registry v1 backed by dictionaries.

    ``failures`` maps request paths to the status code they should return;
    ``requests`` records ``(path, headers)`` for every request served.
    """

    def __init__(self) -> None:
        self.host = ""
        self.tokens: list[str] = ["signature=abc"]
        self.endpoints_header: str | None = None
        self.images: dict[str, dict] = {}
        self.layers: dict[str, bytes] = {}
        self.tags: dict[tuple[str, str], str] = {}
        self.send_size = True
        self.failures: dict[str, int] = {}
        self.requests: list[tuple[str, dict[str, str]]] = []

    def add_image(
        self,
        image_id: str,
        parent: str = "",
        blob: bytes | None = None,
        cmd: list[str] | None = None,
    ) -> None:
        data = {
            "id": image_id,
            "created": "2015-01-27T22:33:19.123456789Z",
            "docker_version": "1.4.1",
            "architecture": "amd64",
            "os": "linux",
            "checksum": "tarsum+sha256:00",
        }
        if parent:
            data["parent"] = parent
        if cmd is not None:
            data["config"] = {"Cmd": cmd, "Entrypoint": None, "Env": ["PATH=/bin"]}
        self.images[image_id] = data
        self.layers[image_id] = blob if blob is not None else make_layer_tar(
            files={f"etc/{image_id}": image_id.encode()}
        )

    def add_chain(self, repo: str, tag: str, image_ids: list[str], cmd=None) -> None:
        """Add images oldest first, each the parent of the next, and tag the last."""
        parent = ""
        for image_id in image_ids:
            self.add_image(image_id, parent=parent, cmd=cmd)
            parent = image_id
        self.tags[(repo, tag)] = image_ids[-1]

    def ancestry(self, image_id: str) -> list[str]:
        chain = []
        while image_id:
            chain.append(image_id)
            image_id = self.images[image_id].get("parent", "")
        return chain

    @property
    def endpoint(self) -> str:
        return f"http://{self.host}/v1/"

    def requested_paths(self) -> list[str]:
        return [path for path, _ in self.requests]

    @web.middleware
    async def _middleware(self, request: web.Request, handler):
        self.requests.append((request.path, dict(request.headers)))
        status = self.failures.get(request.path)
        if status is not None:
            return web.Response(status=status, text="injected failure")
        return await handler(request)

    async def _repo_images(self, request: web.Request) -> web.Response:
        resp = web.json_response([])
        for token in self.tokens:
            resp.headers.add("X-Docker-Token", token)
        if self.endpoints_header is not None:
            resp.headers.add("X-Docker-Endpoints", self.endpoints_header)
        return resp

    async def _tag(self, request: web.Request) -> web.Response:
        key = (request.match_info["name"], request.match_info["tag"])
        if key not in self.tags:
            raise web.HTTPNotFound()
        return web.json_response(self.tags[key])

    async def _image_json(self, request: web.Request) -> web.Response:
        image_id = request.match_info["id"]
        if image_id not in self.images:
            raise web.HTTPNotFound()
        resp = web.json_response(self.images[image_id])
        if self.send_size:
            resp.headers["X-Docker-Size"] = str(len(self.layers[image_id]))
        return resp

    async def _layer(self, request: web.Request) -> web.Response:
        image_id = request.match_info["id"]
        if image_id not in self.layers:
            raise web.HTTPNotFound()
        return web.Response(body=self.layers[image_id], content_type="application/octet-stream")

    async def _ancestry(self, request: web.Request) -> web.Response:
        image_id = request.match_info["id"]
        if image_id not in self.images:
            raise web.HTTPNotFound()
        return web.json_response(self.ancestry(image_id))

    def make_app(self) -> web.Application:
        app = web.Application(middlewares=[self._middleware])
        app.router.add_get("/v1/repositories/{name:.+}/images", self._repo_images)
        app.router.add_get("/v1/repositories/{name:.+}/tags/{tag}", self._tag)
        app.router.add_get("/v1/images/{id}/json", self._image_json)
        app.router.add_get("/v1/images/{id}/layer", self._layer)
        app.router.add_get("/v1/images/{id}/ancestry", self._ancestry)
        return app
