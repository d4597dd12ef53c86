"""
Pass-through proxy for the game-state API.

Every request under the configured backend path (default /ws) is forwarded
to the resolved backend host with the same method, headers and body, and
the upstream response is streamed back unchanged:

    GET /ws/getRandomObject?gameId=7
        -> GET http://<backend_host>/getRandomObject?gameId=7

Bodies are streamed in both directions, never buffered whole. Each request
gets a single attempt; there is no retry or fallback response body.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import httpx
from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from wildwest.config import ResolvedConfig
from wildwest.logging import get_logger

log = get_logger('proxy')

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# RFC 9110 hop-by-hop headers, never forwarded
HOP_BY_HOP = {
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailer", "trailers", "transfer-encoding", "upgrade",
}


def filter_headers(
    headers: Iterable[Tuple[str, str]],
    drop: Iterable[str] = (),
) -> List[Tuple[str, str]]:
    """Remove hop-by-hop headers (and any extra names in drop)."""
    excluded = HOP_BY_HOP | {name.lower() for name in drop}
    return [(key, value) for key, value in headers if key.lower() not in excluded]


def _has_body(headers: Mapping[str, str]) -> bool:
    return "content-length" in headers or "transfer-encoding" in headers


class ProxyRouter:
    """
    Forwards requests under backend_path to the configured backend.

    The router holds the configuration by reference and owns one
    httpx.AsyncClient for connection reuse. Pass a client to control the
    transport (tests use httpx.MockTransport as the backend).

    Usage:
        proxy = ProxyRouter(config)
        app.include_router(proxy.router)
        ...
        await proxy.aclose()
    """

    def __init__(self, config: ResolvedConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client or httpx.AsyncClient(follow_redirects=False)
        self.router = APIRouter(prefix=config.backend_path)
        self._setup_routes()

    def _setup_routes(self):
        """Register the catch-all route for every supported method."""
        self.router.add_api_route(
            "", self.forward, methods=PROXY_METHODS, include_in_schema=False,
        )
        self.router.add_api_route(
            "/{path:path}", self.forward, methods=PROXY_METHODS, include_in_schema=False,
        )

    @property
    def backend_host(self) -> Optional[str]:
        return self.config.backend_host

    def target_url(self, path: str, query: str = "") -> str:
        """
        Build the upstream URL for a path below the mount point.

        Args:
            path: Request path with the backend_path prefix removed
            query: Raw query string, without the leading "?"
        """
        if not path.startswith("/"):
            path = "/" + path
        url = f"http://{self.backend_host}{path}"
        if query:
            url = f"{url}?{query}"
        return url

    def _subpath(self, request: Request) -> str:
        """Request path with the mount prefix stripped ("/" for the mount itself)."""
        # raw_path keeps the client's percent-encoding intact
        raw_path = request.scope.get("raw_path")
        if raw_path:
            path = raw_path.split(b"?", 1)[0].decode("latin-1")
        else:
            path = request.url.path
        prefix = self.config.backend_path
        if path.startswith(prefix):
            path = path[len(prefix):]
        return path or "/"

    async def forward(self, request: Request) -> Response:
        """Forward one request to the backend and stream the response back."""
        if not self.backend_host:
            log.error(
                f"Backend not configured, cannot forward {request.method} {request.url.path} "
                f"({self.config.backend_config_error})"
            )
            return Response(status_code=502)

        backend = self.target_url(self._subpath(request), request.url.query)
        log.debug(f"Requested backend path: {request.url.path} -> {request.method} {backend}")

        headers = filter_headers(request.headers.items(), drop=("host",))
        content = request.stream() if _has_body(request.headers) else None

        try:
            upstream_request = self._client.build_request(
                request.method, backend, headers=headers, content=content,
            )
            upstream = await self._client.send(upstream_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            log.error(f"An error occurred while contacting backend service {backend}: {e!r}")
            return Response(status_code=502)

        log.debug(f"Backend {backend} answered {upstream.status_code}")

        response = StreamingResponse(
            self._relay(upstream, backend),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        # Raw header list keeps repeated headers such as Set-Cookie
        response.raw_headers = [
            (key.lower().encode("latin-1"), value.encode("latin-1"))
            for key, value in filter_headers(upstream.headers.multi_items())
        ]
        return response

    async def _relay(self, upstream: httpx.Response, backend: str):
        """Yield upstream body chunks as received, undecoded."""
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            log.error(f"Backend service {backend} failed mid-response: {e!r}")
            raise
        finally:
            await upstream.aclose()

    async def aclose(self) -> None:
        """Close the upstream HTTP client."""
        await self._client.aclose()

    def stats(self) -> Dict[str, Optional[str]]:
        """Describe the proxy target for the status endpoint."""
        return {
            "backend_path": self.config.backend_path,
            "backend_host": self.backend_host,
            "backend_component": self.config.backend_component,
        }
