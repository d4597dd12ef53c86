"""
Proxy Router Tests

Requests under the backend path are sent through the app with FastAPI's
TestClient; the backend is an httpx.MockTransport double that records
what it received.

Run with: pytest tests/test_proxy.py -v
"""

import asyncio

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from wildwest.config import ResolvedConfig, autoconfig
from wildwest.proxy import HOP_BY_HOP, PROXY_METHODS, ProxyRouter, filter_headers


def make_client(config: ResolvedConfig, backend) -> TestClient:
    """App with only the proxy mounted."""
    proxy = ProxyRouter(config, client=backend.client())
    app = FastAPI()
    app.include_router(proxy.router)
    return TestClient(app)


class TestTargetUrl:
    """Tests for upstream URL construction."""

    def test_path_and_query(self, proxied_config):
        proxy = ProxyRouter(proxied_config)
        assert proxy.target_url('/getRandomObject', 'gameId=7') == \
            'http://localhost:9000/getRandomObject?gameId=7'

    def test_no_query(self, proxied_config):
        proxy = ProxyRouter(proxied_config)
        assert proxy.target_url('/createGame') == 'http://localhost:9000/createGame'

    def test_missing_leading_slash(self, proxied_config):
        proxy = ProxyRouter(proxied_config)
        assert proxy.target_url('createGame') == 'http://localhost:9000/createGame'


class TestFilterHeaders:
    """Tests for hop-by-hop header removal."""

    def test_removes_hop_by_hop(self):
        headers = [('Connection', 'keep-alive'), ('X-Game', '1'), ('Transfer-Encoding', 'chunked')]
        assert filter_headers(headers) == [('X-Game', '1')]

    def test_extra_drop(self):
        headers = [('Host', 'frontend'), ('Accept', '*/*')]
        assert filter_headers(headers, drop=('host',)) == [('Accept', '*/*')]

    def test_keeps_repeated_headers(self):
        headers = [('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2')]
        assert filter_headers(headers) == headers

    def test_hop_by_hop_names_are_lowercase(self):
        assert all(name == name.lower() for name in HOP_BY_HOP)


class TestPassThrough:
    """Requests are forwarded unchanged and responses relayed unchanged."""

    def test_get_with_query(self, proxied_config, backend):
        """GET /ws/getRandomObject?gameId=7 reaches the backend path and query."""
        client = make_client(proxied_config, backend)

        response = client.get('/ws/getRandomObject?gameId=7', headers={'X-Game-Token': 'abc'})

        assert str(backend.last.url) == 'http://localhost:9000/getRandomObject?gameId=7'
        assert backend.last.method == 'GET'
        assert backend.last.headers['x-game-token'] == 'abc'
        assert backend.last.headers['user-agent'] == 'testclient'
        assert backend.last.content == b''
        assert response.status_code == 200
        assert response.content == backend.content

    def test_host_header_is_backend(self, proxied_config, backend):
        """The frontend's Host header is not forwarded."""
        client = make_client(proxied_config, backend)
        client.get('/ws/createGame')
        assert backend.last.headers['host'] == 'localhost:9000'

    def test_status_code_relayed(self, proxied_config, backend):
        backend.status_code = 404
        backend.content = b'no such game'
        client = make_client(proxied_config, backend)

        response = client.get('/ws/deleteObject?gameId=1&id=2')

        assert response.status_code == 404
        assert response.content == b'no such game'

    def test_response_headers_relayed(self, proxied_config, backend):
        backend.headers = [
            ('content-type', 'application/json'),
            ('x-game-id', '7'),
            ('set-cookie', 'a=1'),
            ('set-cookie', 'b=2'),
        ]
        client = make_client(proxied_config, backend)

        response = client.get('/ws/createGame')

        assert response.headers['content-type'] == 'application/json'
        assert response.headers['x-game-id'] == '7'
        assert response.headers.get_list('set-cookie') == ['a=1', 'b=2']

    def test_post_body_forwarded(self, proxied_config, backend):
        client = make_client(proxied_config, backend)

        client.post('/ws/score', content=b'{"score": 120}', headers={'Content-Type': 'application/json'})

        assert backend.last.method == 'POST'
        assert backend.last.content == b'{"score": 120}'
        assert backend.last.headers['content-type'] == 'application/json'
        assert backend.last.headers['content-length'] == str(len(b'{"score": 120}'))

    @pytest.mark.parametrize('method', ['PUT', 'PATCH', 'DELETE', 'OPTIONS'])
    def test_methods_preserved(self, proxied_config, backend, method):
        client = make_client(proxied_config, backend)

        response = client.request(method, '/ws/object/1')

        assert backend.last.method == method
        assert str(backend.last.url) == 'http://localhost:9000/object/1'
        assert response.status_code == 200

    def test_head(self, proxied_config, backend):
        backend.content = b''
        client = make_client(proxied_config, backend)
        response = client.head('/ws/status')
        assert backend.last.method == 'HEAD'
        assert response.status_code == 200

    def test_mount_point_itself(self, proxied_config, backend):
        """/ws forwards to the backend root."""
        client = make_client(proxied_config, backend)
        client.get('/ws')
        assert str(backend.last.url) == 'http://localhost:9000/'

    def test_custom_backend_path(self, backend):
        config = autoconfig({'BACKEND_SERVICE': 'game:8080', 'BACKEND_PATH': '/api/'})
        client = make_client(config, backend)

        client.get('/api/createGame')

        assert str(backend.last.url) == 'http://game:8080/createGame'

    def test_paths_outside_prefix_not_proxied(self, proxied_config, backend):
        client = make_client(proxied_config, backend)
        response = client.get('/other/createGame')
        assert response.status_code == 404
        assert backend.requests == []

    def test_discovered_component_is_target(self, linked_env, backend):
        config = autoconfig(dict(linked_env, BACKEND_COMPONENT_NAME='api'))
        client = make_client(config, backend)

        client.get('/ws/createGame')

        assert str(backend.last.url) == 'http://api.svc:8080/createGame'

    def test_all_methods_registered(self, proxied_config):
        proxy = ProxyRouter(proxied_config)
        methods = set()
        for route in proxy.router.routes:
            methods |= route.methods
        assert methods == set(PROXY_METHODS)


class TestFailures:
    """Upstream failures are logged and answered with 502, never retried."""

    def test_unreachable_backend(self, proxied_config, backend, capsys):
        backend.error = httpx.ConnectError("connection refused")
        client = make_client(proxied_config, backend)

        response = client.get('/ws/createGame')

        assert response.status_code == 502
        assert response.content == b''
        assert len(backend.requests) == 1
        err = capsys.readouterr().err
        assert 'http://localhost:9000/createGame' in err

    def test_unconfigured_backend(self, backend, capsys):
        config = autoconfig({})
        client = make_client(config, backend)

        response = client.get('/ws/createGame')

        assert response.status_code == 502
        assert backend.requests == []
        assert 'Backend not configured' in capsys.readouterr().err

    def test_malformed_backend_address(self, backend, capsys):
        """A BACKEND_SERVICE that is not a valid host:port is a 502, not a crash."""
        config = autoconfig({'BACKEND_SERVICE': 'foo:notaport'})
        client = make_client(config, backend)

        response = client.get('/ws/x')

        assert response.status_code == 502
        assert response.content == b''
        assert backend.requests == []
        assert 'http://foo:notaport/x' in capsys.readouterr().err


def _request(path: str) -> Request:
    """Bodiless GET as the router receives it from the server."""
    return Request({
        'type': 'http',
        'http_version': '1.1',
        'method': 'GET',
        'scheme': 'http',
        'server': ('testserver', 80),
        'root_path': '',
        'path': path,
        'raw_path': path.encode(),
        'query_string': b'',
        'headers': [],
    })


def _streaming_proxy(config: ResolvedConfig, body) -> ProxyRouter:
    """Proxy whose backend answers 200 with the given async body."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    return ProxyRouter(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestStreaming:
    """The upstream body is relayed chunk by chunk, as it arrives.

    These call forward() directly and walk the response's body iterator,
    since TestClient collects the whole body before returning.
    """

    def test_chunks_relayed_as_received(self, proxied_config):
        """Each chunk reaches the client before the backend sends the next."""
        events = []

        async def body():
            for chunk in (b'one', b'two', b'three'):
                events.append(('sent', chunk))
                yield chunk

        proxy = _streaming_proxy(proxied_config, body())

        async def relay():
            response = await proxy.forward(_request('/ws/events'))
            async for chunk in response.body_iterator:
                events.append(('received', chunk))
            await proxy.aclose()

        asyncio.run(relay())

        assert events == [
            ('sent', b'one'), ('received', b'one'),
            ('sent', b'two'), ('received', b'two'),
            ('sent', b'three'), ('received', b'three'),
        ]

    def test_failure_mid_response_aborts_relay(self, proxied_config, capsys):
        """A backend that drops the connection mid-body aborts the client response."""
        async def body():
            yield b'a'
            raise httpx.ReadError("connection reset")

        proxy = _streaming_proxy(proxied_config, body())

        async def relay():
            received = []
            response = await proxy.forward(_request('/ws/events'))
            assert response.status_code == 200
            with pytest.raises(httpx.ReadError):
                async for chunk in response.body_iterator:
                    received.append(chunk)
            await proxy.aclose()
            return received

        assert asyncio.run(relay()) == [b'a']
        err = capsys.readouterr().err
        assert 'Backend service http://localhost:9000/events failed mid-response' in err
