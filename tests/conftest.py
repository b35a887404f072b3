import asyncio
import dataclasses
import itertools
import json
import logging
import re
import struct
from typing import Any, Dict, List, Optional, Tuple, Type, Union

import aiohttp.test_utils
import aiohttp.web
import pytest

from kubewire._cogs.clients.client import Client
from kubewire._cogs.configs.configuration import ClientSettings
from kubewire._cogs.structs.credentials import ConnectionInfo
from kubewire._cogs.structs.models import Model, Status
from kubewire._cogs.structs.references import Resource
from kubewire._cogs.structs.registries import NotRegisteredError, make_default_registry
from kubewire._cogs.wire import codecs, schemas


class KopfExample(Model):
    """ A custom resource: no protobuf schema, so JSON-only. """
    resource = Resource('kopf.dev', 'v1', 'kopfexamples',
                        kind='KopfExample', singular='kopfexample', shortcuts=frozenset({'kex'}),
                        namespaced=True)


#
# The fake API server: an in-memory store with the CRUD, list & watch endpoints,
# speaking either JSON or protobuf as negotiated by the client's headers.
#

@dataclasses.dataclass()
class Watcher:
    model: Type[Model]
    plural: str
    namespace: Optional[str]
    name: Optional[str]
    codec: codecs.Codec
    queue: "asyncio.Queue[Union[None, bytes, Tuple[str, Dict[str, Any]]]]"


@dataclasses.dataclass()
class FakeRequest:
    method: str
    path: str
    query: Dict[str, str]
    headers: Dict[str, str]


class FakeAPI:
    """
    A minimal server-side simulation of the API, enough for the client's needs.

    The objects are stored as the raw JSON-shaped dicts, and are encoded
    into the negotiated encoding on every response (with the client's codecs,
    which are tested separately).
    """

    def __init__(self) -> None:
        super().__init__()
        self.url = ''
        self.objects: Dict[Tuple[str, Optional[str], str], Dict[str, Any]] = {}
        self.watchers: List[Watcher] = []
        self.requests: List[FakeRequest] = []
        self.failures: List[aiohttp.web.Response] = []
        self.registry = make_default_registry()
        self.registry.register_model(KopfExample)
        self._versions = itertools.count(1)
        self._uids = itertools.count(1)

    def make_app(self) -> aiohttp.web.Application:
        app = aiohttp.web.Application()
        app.router.add_route('*', '/{tail:.*}', self.handle)
        return app

    # Helpers for the tests: to influence the responses & the streams.

    def fail_next(self, status: int, body: bytes = b'', content_type: str = 'application/json'):
        self.failures.append(aiohttp.web.Response(status=status, body=body,
                                                  content_type=content_type))

    def broadcast(self, event_type: str, raw: Dict[str, Any]) -> None:
        for watcher in self.watchers:
            watcher.queue.put_nowait((event_type, raw))

    def inject(self, frame: bytes) -> None:
        for watcher in self.watchers:
            watcher.queue.put_nowait(frame)

    def end_streams(self) -> None:
        for watcher in self.watchers:
            watcher.queue.put_nowait(None)

    # The request handling.

    def negotiate(self, request: aiohttp.web.Request, model: Type[Model]) -> codecs.Codec:
        accept = request.headers.get('Accept', '')
        if codecs.PROTOBUF_CONTENT_TYPE in accept and model.schema is not None:
            return codecs.PROTOBUF
        return codecs.JSON

    def respond(self, codec: codecs.Codec, model: Type[Model], raw: Dict[str, Any],
                status: int = 200) -> aiohttp.web.Response:
        return aiohttp.web.Response(status=status, body=codec.encode(model.from_raw(raw)),
                                    content_type=codec.content_type)

    def respond_status(self, codec: codecs.Codec, code: int, reason: str,
                       message: str) -> aiohttp.web.Response:
        raw = {'apiVersion': 'v1', 'kind': 'Status', 'status': 'Failure',
               'code': code, 'reason': reason, 'message': message}
        return self.respond(codec, Status, raw, status=code)

    async def handle(self, request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        self.requests.append(FakeRequest(method=request.method, path=request.path,
                                         query=dict(request.query),
                                         headers=dict(request.headers)))
        if self.failures:
            return self.failures.pop(0)

        parts = request.path.strip('/').split('/')
        if parts[0] == 'api':
            rest = parts[2:]
        elif parts[0] == 'apis':
            rest = parts[3:]
        else:
            return aiohttp.web.Response(status=404)

        namespace: Optional[str] = None
        if len(rest) >= 3 and rest[0] == 'namespaces':
            namespace, rest = rest[1], rest[2:]
        plural = rest[0]
        name = rest[1] if len(rest) > 1 else None

        try:
            model: Type[Model] = self.registry.find(plural)
        except NotRegisteredError:
            return aiohttp.web.Response(status=404)
        codec = self.negotiate(request, model)

        if request.method == 'GET' and name is None and request.query.get('watch') == 'true':
            return await self.watch(request, model, plural, namespace, codec)
        elif request.method == 'GET' and name is None:
            return self.list(request, model, plural, namespace, codec)
        elif request.method == 'GET':
            raw = self.objects.get((plural, namespace, name))
            if raw is None:
                return self.respond_status(codec, 404, 'NotFound', f'{plural} "{name}" not found')
            return self.respond(codec, model, raw)
        elif request.method == 'POST':
            raw = await self.read_body(request, model)
            return self.create(model, plural, namespace, codec, raw)
        elif request.method == 'PUT':
            raw = await self.read_body(request, model)
            return self.update(model, plural, namespace, name, codec, raw)
        elif request.method == 'DELETE':
            raw = self.objects.pop((plural, namespace, name), None)
            if raw is None:
                return self.respond_status(codec, 404, 'NotFound', f'{plural} "{name}" not found')
            self.notify(plural, 'DELETED', raw)
            return self.respond(codec, model, raw)
        else:
            return aiohttp.web.Response(status=405)

    async def read_body(self, request: aiohttp.web.Request, model: Type[Model]) -> Dict[str, Any]:
        data = await request.read()
        codec = codecs.for_content_type(request.headers.get('Content-Type')) or codecs.JSON
        return codec.decode(data, model).raw

    def create(self, model, plural, namespace, codec, raw):
        metadata = raw.setdefault('metadata', {})
        if not metadata.get('name') and metadata.get('generateName'):
            metadata['name'] = f"{metadata['generateName']}{next(self._uids):05d}"
        key = (plural, namespace, metadata['name'])
        if key in self.objects:
            return self.respond_status(codec, 409, 'AlreadyExists',
                                       f'{plural} "{metadata["name"]}" already exists')
        if namespace is not None:
            metadata['namespace'] = namespace
        metadata['uid'] = f'uid-{next(self._uids)}'
        metadata['resourceVersion'] = str(next(self._versions))
        self.objects[key] = raw
        self.notify(plural, 'ADDED', raw)
        return self.respond(codec, model, raw, status=201)

    def update(self, model, plural, namespace, name, codec, raw):
        key = (plural, namespace, name)
        if key not in self.objects:
            return self.respond_status(codec, 404, 'NotFound', f'{plural} "{name}" not found')
        metadata = raw.setdefault('metadata', {})
        metadata['uid'] = self.objects[key].get('metadata', {}).get('uid')
        metadata['resourceVersion'] = str(next(self._versions))
        self.objects[key] = raw
        self.notify(plural, 'MODIFIED', raw)
        return self.respond(codec, model, raw)

    def select(self, request, plural, namespace, name=None):
        labels = dict(re.findall(r'([^,=]+)=([^,]*)', request.query.get('labelSelector', '')))
        fields = dict(re.findall(r'([^,=]+)=([^,]*)', request.query.get('fieldSelector', '')))
        name = name or fields.get('metadata.name')
        for (obj_plural, obj_namespace, obj_name), raw in self.objects.items():
            obj_labels = raw.get('metadata', {}).get('labels') or {}
            if obj_plural != plural:
                continue
            if namespace is not None and obj_namespace != namespace:
                continue
            if name is not None and obj_name != name:
                continue
            if any(obj_labels.get(key) != value for key, value in labels.items()):
                continue
            yield raw

    def list(self, request, model, plural, namespace, codec):
        items = [dict(raw) for raw in self.select(request, plural, namespace)]
        for item in items:
            item.pop('apiVersion', None)
            item.pop('kind', None)
        metadata = {'resourceVersion': str(next(self._versions))}
        if codec is codecs.PROTOBUF:
            msg = schemas.to_message(f'{model.schema}List', {'metadata': metadata, 'items': items})
            return aiohttp.web.Response(body=codecs.PROTOBUF.wrap(msg.SerializeToString()),
                                        content_type=codec.content_type)
        else:
            body = {'apiVersion': model.api_version, 'kind': f'{model.kind}List',
                    'metadata': metadata, 'items': items}
            return aiohttp.web.json_response(body)

    def notify(self, plural: str, event_type: str, raw: Dict[str, Any]) -> None:
        metadata = raw.get('metadata', {})
        for watcher in self.watchers:
            if watcher.plural != plural:
                continue
            if watcher.namespace is not None and watcher.namespace != metadata.get('namespace'):
                continue
            if watcher.name is not None and watcher.name != metadata.get('name'):
                continue
            watcher.queue.put_nowait((event_type, dict(raw)))

    def frame(self, watcher: Watcher, event_type: str, raw: Dict[str, Any]) -> bytes:
        model = Status if raw.get('kind') == 'Status' else watcher.model
        if watcher.codec is codecs.PROTOBUF:
            event = schemas.get_message_class(schemas.WATCH_EVENT)()
            event.type = event_type
            event.object.raw = codecs.PROTOBUF.encode(model.from_raw(raw))
            data = codecs.PROTOBUF.wrap(event.SerializeToString())
            return struct.pack('>I', len(data)) + data
        else:
            return json.dumps({'type': event_type, 'object': raw}).encode('utf-8') + b'\n'

    async def watch(self, request, model, plural, namespace, codec):
        fields = dict(re.findall(r'([^,=]+)=([^,]*)', request.query.get('fieldSelector', '')))
        watcher = Watcher(model=model, plural=plural, namespace=namespace,
                          name=fields.get('metadata.name'), codec=codec, queue=asyncio.Queue())
        if 'resourceVersion' not in request.query:
            for raw in self.select(request, plural, namespace):
                watcher.queue.put_nowait(('ADDED', dict(raw)))
        self.watchers.append(watcher)

        timeout = float(request.query['timeoutSeconds']) if 'timeoutSeconds' in request.query else None
        response = aiohttp.web.StreamResponse()
        response.content_type = codec.content_type
        await response.prepare(request)
        try:
            while True:
                try:
                    item = await asyncio.wait_for(watcher.queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    break
                if item is None:
                    break
                elif isinstance(item, bytes):
                    await response.write(item)
                else:
                    await response.write(self.frame(watcher, *item))
        except ConnectionResetError:
            pass  # the client has gone away; nothing to stream anymore.
        finally:
            self.watchers.remove(watcher)
        return response


@pytest.fixture()
async def fakeapi():
    api = FakeAPI()
    server = aiohttp.test_utils.TestServer(api.make_app())
    await server.start_server()
    api.url = str(server.make_url('/'))
    try:
        yield api
    finally:
        api.end_streams()
        await server.close()


@pytest.fixture()
def info(fakeapi):
    return ConnectionInfo(server=fakeapi.url)


@pytest.fixture()
def settings():
    return ClientSettings()


@pytest.fixture(params=[False, True], ids=['json', 'protobuf'])
def prefer_protobuf(request, settings):
    settings.encoding.prefer_protobuf = request.param
    return request.param


@pytest.fixture()
async def client(info, settings, prefer_protobuf):
    async with Client(info, settings=settings, models=[KopfExample]) as client:
        yield client


#
# Helpers for the logging checks.
#

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
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
