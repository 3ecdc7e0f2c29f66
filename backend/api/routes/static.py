"""
LiveCoord Static Files.

Serves the watched directory, remembers what was served and adds the
live-reload script to HTML pages.
Requires Python 3.11+.
"""

import stat
from pathlib import Path

from starlette.datastructures import Headers
from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from protocol.messages import ServedFile
from watcher.file_watcher import ServedFileRegistry


def _wants_html(value: str | None) -> bool:
    return value is not None and "text/html" in value


class ServedFiles(StaticFiles):
    """
    StaticFiles that records every file it serves.

    The web path and referer of each request end up in the registry, so
    a later change to that file is reported under the same URL. When a
    browser asks for HTML and gets HTML, the client script tag is put in
    front of every ``</body>``.
    """

    def __init__(
        self,
        *,
        registry: ServedFileRegistry,
        script_src: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(directory=registry.root, **kwargs)
        self._registry = registry
        self._script_tag = (
            f'<script src="{script_src}"></script>'.encode("utf-8") if script_src else None
        )

    async def get_response(self, path: str, scope: Scope) -> Response:
        response = await super().get_response(path, scope)
        if response.status_code not in (200, 304):
            return response

        full_path, stat_result = self.lookup_path(path)
        if stat_result is None or not stat.S_ISREG(stat_result.st_mode):
            # html=True answers directories with their index.html
            full_path, stat_result = self.lookup_path(str(Path(path) / "index.html"))
            if stat_result is None or not stat.S_ISREG(stat_result.st_mode):
                return response

        headers = Headers(scope=scope)
        self._registry.register(
            ServedFile(
                path=full_path,
                web_path=scope["path"],
                referer=headers.get("referer"),
            )
        )

        if (
            self._script_tag is not None
            and response.status_code == 200
            and _wants_html(headers.get("accept"))
            and _wants_html(response.headers.get("content-type"))
        ):
            return self._with_script(full_path, response)
        return response

    def _with_script(self, full_path: str, response: Response) -> Response:
        body = Path(full_path).read_bytes()
        body = body.replace(b"</body>", self._script_tag + b"</body>")
        return Response(
            content=body,
            status_code=response.status_code,
            media_type=response.headers.get("content-type"),
        )
