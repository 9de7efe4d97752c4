import contextvars
import copy
import dataclasses
import logging
import re
from typing import Any, Optional

import aiohttp.test_utils
import aiohttp.web
import pytest

from esupdater.clients import auth
from esupdater.structs.configuration import DiscoverySettings, Settings, WebhookSettings
from esupdater.structs.credentials import ConnectionInfo, Vault, VaultKey

ES_PREFIX = '/apis/external-secrets.io/v1beta1'


def _status(code: int, reason: str, message: str) -> aiohttp.web.Response:
    return aiohttp.web.json_response({
        'apiVersion': 'v1', 'kind': 'Status', 'status': 'Failure',
        'code': code, 'reason': reason, 'message': message,
    }, status=code)


@dataclasses.dataclass
class FakeAPI:
    """
    A fake Kubernetes API with namespaces and ExternalSecrets in memory.

    It is served by a real local aiohttp server, so the whole client stack
    (sessions, URLs, error parsing) is exercised as with a real cluster.
    Every request is recorded as ``(method, path)`` for the assertions.
    """
    namespaces: list[str] = dataclasses.field(default_factory=list)
    objects: dict[tuple[str, str], dict[str, Any]] = dataclasses.field(default_factory=dict)
    requests: list[tuple[str, str]] = dataclasses.field(default_factory=list)
    bodies: list[dict[str, Any]] = dataclasses.field(default_factory=list)  # as PUT
    valid_tokens: Optional[set[str]] = None  # None means no authentication
    forbidden_namespaces: bool = False
    forbidden_listings: set[str] = dataclasses.field(default_factory=set)
    failing_updates: dict[tuple[str, str], int] = dataclasses.field(default_factory=dict)
    version: Optional[dict[str, str]] = dataclasses.field(
        default_factory=lambda: {'major': '1', 'minor': '30', 'gitVersion': 'v1.30.0'})
    server: str = ''

    def add(self, namespace: str, name: str, spec: Any = None, **meta: Any) -> dict[str, Any]:
        body: dict[str, Any] = {
            'apiVersion': 'external-secrets.io/v1beta1',
            'kind': 'ExternalSecret',
            'metadata': dict({'namespace': namespace, 'name': name, 'resourceVersion': '1'}, **meta),
        }
        if spec is not None:
            body['spec'] = spec
        if namespace not in self.namespaces:
            self.namespaces.append(namespace)
        self.objects[(namespace, name)] = body
        return body

    @property
    def puts(self) -> list[tuple[str, str]]:
        return [(m, p) for m, p in self.requests if m == 'PUT']

    def make_app(self) -> aiohttp.web.Application:
        app = aiohttp.web.Application(middlewares=[self._record])
        app.add_routes([
            aiohttp.web.get('/version', self._get_version),
            aiohttp.web.get('/api/v1/namespaces', self._list_namespaces),
            aiohttp.web.get(ES_PREFIX + '/namespaces/{ns}/externalsecrets', self._list_objs),
            aiohttp.web.get(ES_PREFIX + '/namespaces/{ns}/externalsecrets/{name}', self._get_obj),
            aiohttp.web.put(ES_PREFIX + '/namespaces/{ns}/externalsecrets/{name}', self._put_obj),
        ])
        return app

    @aiohttp.web.middleware
    async def _record(self, request, handler):
        self.requests.append((request.method, request.path))
        if self.valid_tokens is not None:
            header = request.headers.get('Authorization', '')
            if header not in {f'Bearer {token}' for token in self.valid_tokens}:
                return _status(401, 'Unauthorized', 'Unauthorized')
        return await handler(request)

    async def _get_version(self, request):
        if self.version is None:
            return _status(500, 'InternalError', 'the server is down')
        return aiohttp.web.json_response(self.version)

    async def _list_namespaces(self, request):
        if self.forbidden_namespaces:
            return _status(403, 'Forbidden', 'namespaces is forbidden')
        return aiohttp.web.json_response({
            'apiVersion': 'v1', 'kind': 'NamespaceList',
            'items': [{'metadata': {'name': name}} for name in self.namespaces],
        })

    async def _list_objs(self, request):
        ns = request.match_info['ns']
        if ns in self.forbidden_listings:
            return _status(403, 'Forbidden', f'externalsecrets is forbidden in {ns}')
        items = []
        for (obj_ns, _), body in self.objects.items():
            if obj_ns == ns:
                item = copy.deepcopy(body)
                del item['apiVersion'], item['kind']  # as in the real lists
                items.append(item)
        return aiohttp.web.json_response({
            'apiVersion': 'external-secrets.io/v1beta1', 'kind': 'ExternalSecretList',
            'items': items,
        })

    async def _get_obj(self, request):
        key = (request.match_info['ns'], request.match_info['name'])
        if key not in self.objects:
            return _status(404, 'NotFound', f'{key[1]} not found')
        return aiohttp.web.json_response(self.objects[key])

    async def _put_obj(self, request):
        key = (request.match_info['ns'], request.match_info['name'])
        body = await request.json()
        self.bodies.append(copy.deepcopy(body))
        if self.failing_updates.get(key):
            return _status(self.failing_updates[key], 'Failure', 'update has failed')
        if key not in self.objects:
            return _status(404, 'NotFound', f'{key[1]} not found')
        stored_version = self.objects[key]['metadata']['resourceVersion']
        if body.get('metadata', {}).get('resourceVersion') != stored_version:
            return _status(409, 'Conflict', 'the object has been modified')
        body['metadata']['resourceVersion'] = str(int(stored_version) + 1)
        self.objects[key] = body
        return aiohttp.web.json_response(body)


@pytest.fixture()
async def fake_api():
    api = FakeAPI()
    server = aiohttp.test_utils.TestServer(api.make_app())
    await server.start_server()
    api.server = f'http://{server.host}:{server.port}'
    try:
        yield api
    finally:
        await server.close()


@pytest.fixture()
async def fake_vault(mocker, fake_api):
    """
    Provide a freshly created and populated authentication vault for every test.

    The vault is made the default of the context variable, as if every coroutine
    is invoked from the webhook server (where it is set normally).
    """
    key = VaultKey('fixture')
    info = ConnectionInfo(server=fake_api.server)
    vault = Vault({key: info})
    mocker.patch.object(auth, 'vault_var', contextvars.ContextVar('vault_var', default=vault))
    try:
        yield vault
    finally:
        await vault.close()


@pytest.fixture()
def namespace_file(tmp_path):
    path = tmp_path / 'namespace'
    path.write_text(' own-ns\n', encoding='utf-8')
    return path


@pytest.fixture()
def settings(namespace_file):
    return Settings(
        webhook=WebhookSettings(username='user', password='pass', path='/webhook'),
        discovery=DiscoverySettings(namespace_path=str(namespace_file)),
    )


@pytest.fixture()
def logger():
    return logging.getLogger('esupdater.tests')


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    caplog.set_level(logging.DEBUG)

    def assert_logs_fn(patterns, prohibited=[]):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            if remaining_patterns and re.search(remaining_patterns[0], message):
                remaining_patterns[:1] = []
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
