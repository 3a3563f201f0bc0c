"""
Static asset serving for production mode

Serves files from the prebuilt frontend bundle. Any path without a matching
file gets the canonical entry document so the single-page app can route it
client-side.
"""

from pathlib import Path
from typing import Optional

import structlog
from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse, Response
from starlette.websockets import WebSocket

from shared.utils.errors import ConfigurationError

from .websocket_proxy import POLICY_VIOLATION

logger = structlog.get_logger(__name__)


class StaticAssetResolver:
    """
    Resolves request paths against the static root.

    Resolved paths are checked against the root after symlinks are followed,
    so nothing outside the bundle is ever served.
    """

    IMMUTABLE_CACHE = "public, max-age=31536000, immutable"
    NO_CACHE = "no-cache"
    ALLOWED_METHODS = ("GET", "HEAD")

    def __init__(self, root: str, entry_document: str = "index.html", immutable_dir: str = "assets"):
        root_path = Path(root)
        if not root_path.is_dir():
            raise ConfigurationError(f"Static root is not a directory: {root}", fields=["STATIC_ROOT"])
        self.root = root_path.resolve()
        self.entry = self.root / entry_document
        if not self.entry.is_file():
            raise ConfigurationError(
                f"Entry document '{entry_document}' not found in static root",
                fields=["ENTRY_DOCUMENT"],
            )
        self.immutable_dir = immutable_dir.strip("/")

    def resolve(self, path: str) -> Optional[Path]:
        """Map a URL path to a file inside the root, or None"""
        relative = path.lstrip("/")
        if not relative or "\x00" in relative:
            return None
        candidate = (self.root / relative).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            return None
        if not candidate.is_file():
            return None
        return candidate

    def cache_control(self, asset: Path) -> str:
        relative = asset.relative_to(self.root)
        if self.immutable_dir and relative.parts and relative.parts[0] == self.immutable_dir:
            return self.IMMUTABLE_CACHE
        return self.NO_CACHE

    async def handle(self, request: Request) -> Response:
        if request.method not in self.ALLOWED_METHODS:
            return JSONResponse(
                status_code=405,
                content={"error": "Method Not Allowed"},
                headers={"Allow": ", ".join(self.ALLOWED_METHODS)},
            )

        asset = self.resolve(request.url.path)
        if asset is None:
            # SPA fallback
            return FileResponse(self.entry, headers={"Cache-Control": self.NO_CACHE})
        return FileResponse(asset, headers={"Cache-Control": self.cache_control(asset)})

    async def handle_websocket(self, websocket: WebSocket) -> None:
        logger.debug("Rejecting upgrade on static path", path=websocket.url.path)
        await websocket.close(code=POLICY_VIOLATION)
