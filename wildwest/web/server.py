"""
FastAPI frontend server for the Wild West game.

Serves the HTML shell and static assets, reports status, and mounts the
pass-through proxy for the game-state API.
"""

import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from wildwest.config import DEFAULT_BACKEND_PATH, ResolvedConfig
from wildwest.proxy import ProxyRouter

logger = logging.getLogger("wildwest.web")

DEFAULT_FRONTEND_DIR = Path(__file__).parent / "frontend"

BACKEND_PATH_MARKER = "// BACKEND_PATH_CONFIG"


def render_index(index_html: str, backend_path: str) -> str:
    """Point the game client at a non-default backend path."""
    if backend_path == DEFAULT_BACKEND_PATH:
        return index_html
    return index_html.replace(BACKEND_PATH_MARKER, f"window.backend_path = '{backend_path}';")


def create_app(
    config: ResolvedConfig,
    frontend_dir: Optional[Path] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the frontend application.

    Args:
        config: Resolved server configuration
        frontend_dir: Directory holding index.html and assets/
        client: HTTP client for the proxy (default: new httpx.AsyncClient)
    """
    frontend_dir = Path(frontend_dir) if frontend_dir else DEFAULT_FRONTEND_DIR
    proxy = ProxyRouter(config, client=client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.backend_config_error:
            logger.warning(f"Starting without a backend: {config.backend_config_error}")
        yield
        await proxy.aclose()

    app = FastAPI(title="Wild West Frontend", lifespan=lifespan)
    app.state.config = config
    app.state.proxy = proxy

    app.include_router(proxy.router)

    @app.get("/status")
    async def status():
        """Health check endpoint."""
        return {
            "status": "ok",
            "hostname": config.platform.hostname,
            "port": config.platform.port,
        }

    @app.get("/hostname")
    async def hostname():
        return HTMLResponse(content=f"<p>Hostname: {config.platform.hostname}</p>")

    async def index_page():
        """Serve the game page."""
        index_path = frontend_dir / "index.html"
        if index_path.exists():
            return HTMLResponse(content=render_index(index_path.read_text(), config.backend_path))

        # Fallback for when the frontend is missing
        return HTMLResponse(content=f"""
<!DOCTYPE html>
<html><head><title>Wild West</title></head>
<body style="font-family:sans-serif;padding:20px;">
<h1>Wild West</h1>
<p>No index.html found in {frontend_dir}</p>
<p>{config.backend_config_info}</p>
</body></html>
""")

    app.add_api_route(config.frontend_path, index_page, methods=["GET"])

    if config.no_slash_frontend:
        @app.get(config.no_slash_frontend, include_in_schema=False)
        async def frontend_redirect():
            return RedirectResponse(url=config.frontend_path)

    assets_dir = frontend_dir / "assets"
    if assets_dir.is_dir():
        app.mount("/assets", StaticFiles(directory=assets_dir), name="assets")
        logger.info(f"Serving assets from {assets_dir}")

    return app


class FrontendServer:
    """
    Runs the frontend application under uvicorn.

    Usage:
        server = FrontendServer(config)
        server.run()            # blocking

        # or in the background
        server.start()
        ...
        server.stop()
    """

    def __init__(
        self,
        config: ResolvedConfig,
        host: Optional[str] = None,
        port: Optional[int] = None,
        frontend_dir: Optional[Path] = None,
    ):
        """
        Initialize the server.

        Args:
            config: Resolved server configuration
            host: Interface to bind (default: config.platform.ip)
            port: Port to listen on (default: config.platform.port)
            frontend_dir: Directory holding index.html and assets/
        """
        self.config = config
        self.host = host or config.platform.ip
        self.port = port or config.platform.port
        self.app = create_app(config, frontend_dir=frontend_dir)

        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def _make_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
        )
        return uvicorn.Server(config)

    def run(self):
        """Serve until interrupted."""
        self._server = self._make_server()
        print(f"Listening on {self.host}, port {self.port}")
        self._server.run()

    def start(self):
        """Start the server in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning("Frontend server already running")
            return

        self._server = self._make_server()

        def run_server():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            loop.run_until_complete(self._server.serve())

        self._thread = threading.Thread(target=run_server, daemon=True)
        self._thread.start()

        # Give server a moment to start
        time.sleep(0.5)

        logger.info(f"Frontend available at {self.url}")

    def stop(self):
        """Stop a server started with start()."""
        if self._server:
            self._server.should_exit = True
        if self._thread:
            self._thread.join(timeout=2.0)
        logger.info("Frontend server stopped")

    @property
    def url(self) -> str:
        """Get the URL to access the frontend."""
        return f"http://{self.host}:{self.port}{self.config.frontend_path}"
