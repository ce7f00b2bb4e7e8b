"""
Shared pytest fixtures for registry client tests.

Fixtures provided:
- fake_registry: In-process registry v2 HTTP server (aiohttp.web) recording every request
- digest_cache: Fresh DigestCache backed by an in-memory SessionStore
- transport: RegistryTransport bound to digest_cache, closed after the test
- registry_client: RegistryClient pointed at fake_registry

The fake registry answers 404 for anything not registered, like a real
registry does for unknown repositories.
"""

import asyncio
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from registry.client import RegistryClient
from registry.digest_cache import DigestCache, SessionStore
from registry.transport import RegistryTransport


Handler = Callable[[web.Request], web.StreamResponse]


@dataclass
class RecordedRequest:
    method: str
    path: str
    query: Dict[str, str]
    headers: Dict[str, str]


class FakeRegistry:
    """Minimal registry v2 server; tests register responses per (method, path)."""

    def __init__(self):
        self.requests: List[RecordedRequest] = []
        self._routes: Dict[Tuple[str, str], Handler] = {}
        self.base_url = ''

    def route(self, method: str, path: str, handler: Handler):
        self._routes[(method.upper(), path)] = handler

    def json(
        self,
        method: str,
        path: str,
        data: Any,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None
    ):
        """Register a JSON response. A fresh web.Response is built per request."""
        self.route(
            method,
            path,
            lambda request: web.json_response(data, status=status, headers=headers),
        )

    def head(
        self,
        path: str,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        body_size: int = 0
    ):
        """Register a HEAD response; Content-Length follows body_size."""
        body = b"\0" * body_size if body_size else None
        self.route('HEAD', path, lambda request: web.Response(status=status, headers=headers, body=body))

    def requests_for(self, method: str, path: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.path == path]

    async def _dispatch(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(RecordedRequest(
            method=request.method,
            path=request.path,
            query=dict(request.query),
            headers=dict(request.headers),
        ))
        handler = self._routes.get((request.method, request.path))
        if handler is None:
            return web.json_response(
                {'errors': [{'code': 'NAME_UNKNOWN', 'message': 'repository name not known to registry'}]},
                status=404,
            )
        response = handler(request)
        if asyncio.iscoroutine(response):
            response = await response
        return response

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route('*', '/{tail:.*}', self._dispatch)
        return app


@pytest_asyncio.fixture
async def fake_registry():
    registry = FakeRegistry()
    server = TestServer(registry.make_app())
    await server.start_server()
    registry.base_url = str(server.make_url('')).rstrip('/')
    yield registry
    await server.close()


@pytest.fixture
def digest_cache():
    return DigestCache(SessionStore())


@pytest_asyncio.fixture
async def transport(digest_cache):
    transport = RegistryTransport(cache=digest_cache)
    yield transport
    await transport.close()


@pytest_asyncio.fixture
async def registry_client(fake_registry, transport):
    client = RegistryClient(fake_registry.base_url, transport)
    yield client
    await client.close()


@pytest.fixture
def sample_manifest():
    """Docker v2 manifest with a config blob and two layers."""
    return {
        'schemaVersion': 2,
        'mediaType': 'application/vnd.docker.distribution.manifest.v2+json',
        'config': {
            'mediaType': 'application/vnd.docker.container.image.v1+json',
            'size': 500,
            'digest': 'sha256:' + 'c' * 64,
        },
        'layers': [
            {
                'mediaType': 'application/vnd.docker.image.rootfs.diff.tar.gzip',
                'size': 100,
                'digest': 'sha256:' + '0' * 64,
            },
            {
                'mediaType': 'application/vnd.docker.image.rootfs.diff.tar.gzip',
                'size': 250,
                'digest': 'sha256:' + '1' * 64,
            },
        ],
    }


@pytest.fixture
def sample_config_blob():
    """Config blob whose second history entry is an empty layer."""
    return {
        'created': '2024-05-01T10:00:00Z',
        'architecture': 'amd64',
        'os': 'linux',
        'config': {
            'Env': ['PATH=/usr/local/bin:/usr/bin'],
            'Cmd': ['nginx', '-g', 'daemon off;'],
            'WorkingDir': '/srv',
            'Labels': {'org.opencontainers.image.version': '1.25.3'},
            'ExposedPorts': {'80/tcp': {}, '443/tcp': {}},
        },
        'history': [
            {'created': '2024-05-01T09:00:00Z', 'created_by': '/bin/sh -c #(nop) ADD file:abc in /'},
            {'created': '2024-05-01T09:01:00Z', 'created_by': '/bin/sh -c #(nop) ENV PATH=/usr/local/bin', 'empty_layer': True},
            {'created': '2024-05-01T09:02:00Z', 'created_by': '/bin/sh -c apt-get install -y nginx'},
        ],
    }
