import json

import pytest

from kubewire._cogs.structs.models import ConfigMap, Model, Namespace, Secret
from kubewire._cogs.structs.references import Resource
from kubewire._cogs.wire import schemas
from kubewire._cogs.wire.codecs import JSON, JSON_CONTENT_TYPE, MAGIC, PROTOBUF, \
                                       PROTOBUF_CONTENT_TYPE, for_content_type, for_model
from kubewire._cogs.wire.errors import DecodeError, EncodeError


class KopfExample(Model):
    resource = Resource('kopf.dev', 'v1', 'kopfexamples', kind='KopfExample', namespaced=True)


SAMPLES = [
    ConfigMap(
        metadata={
            'name': 'cm1',
            'namespace': 'ns',
            'uid': 'uid1',
            'resourceVersion': '123',
            'generation': 2,
            'labels': {'app': 'web'},
            'annotations': {'note': 'hello'},
            'finalizers': ['a', 'b'],
            'creationTimestamp': '2020-12-31T23:59:59Z',
            'ownerReferences': [{'apiVersion': 'v1', 'kind': 'Namespace', 'name': 'ns',
                                 'uid': 'uid0', 'controller': True}],
        },
        data={'key': 'value', 'other': 'line1\nline2'},
    ),
    Secret(metadata={'name': 's1', 'namespace': 'ns'}, type='Opaque', data={'k': 'dmFsdWU='}),
    Namespace(metadata={'name': 'ns1'}, spec={'finalizers': ['kubernetes']},
              status={'phase': 'Active'}),
]


@pytest.mark.parametrize('codec', [JSON, PROTOBUF], ids=['json', 'protobuf'])
@pytest.mark.parametrize('obj', SAMPLES, ids=['configmap', 'secret', 'namespace'])
def test_roundtrip(codec, obj):
    decoded = codec.decode(codec.encode(obj), type(obj))
    assert type(decoded) is type(obj)
    assert decoded == obj


METADATAS = [
    {'name': 'obj1'},
    {'name': 'obj1', 'labels': {}, 'annotations': {}},
    {'name': 'obj1', 'labels': {'a': 'b'}, 'finalizers': []},
    {'name': 'obj1', 'ownerReferences': [], 'generateName': None},
    {'name': 'obj1', 'ownerReferences': [{'name': 'owner', 'uid': 'uid0'}], 'finalizers': ['f']},
    {},
]


def generate_objects():
    for metadata in METADATAS:
        for data in [None, {}, {'k': 'dmFsdWU='}]:
            yield ConfigMap(metadata=metadata, data=data)
            yield Secret(metadata=metadata, data=data, type=None)
        for spec in [{}, {'finalizers': []}, {'finalizers': ['kubernetes']}]:
            yield Namespace(metadata=metadata, spec=spec, status={})


@pytest.mark.parametrize('codec', [JSON, PROTOBUF], ids=['json', 'protobuf'])
def test_roundtrip_of_generated_objects(codec):
    for obj in generate_objects():
        decoded = codec.decode(codec.encode(obj), type(obj))
        assert decoded == obj, obj


def test_empty_collections_and_nulls_are_dropped_for_kinds_with_schemas():
    obj = ConfigMap(metadata={'name': 'cm1', 'labels': {}, 'finalizers': [], 'uid': None},
                    data={}, binaryData=None)
    assert obj.raw == {'apiVersion': 'v1', 'kind': 'ConfigMap', 'metadata': {'name': 'cm1'}}


def test_unknown_fields_are_kept_as_is_for_kinds_with_schemas():
    obj = ConfigMap(metadata={'name': 'cm1', 'custom': {}}, extra=[])
    assert obj.raw['metadata'] == {'name': 'cm1', 'custom': {}}
    assert obj.raw['extra'] == []


def test_empty_collections_are_kept_for_kinds_without_schemas():
    obj = KopfExample(metadata={'labels': {}}, spec={}, items=[])
    assert obj.raw['metadata'] == {'labels': {}}
    assert obj.raw['spec'] == {}
    assert obj.raw['items'] == []


def test_json_encoding_drops_empty_collections_added_later():
    obj = ConfigMap(metadata={'name': 'cm1'})
    assert obj.data == {}  # and now it is in the body.
    assert json.loads(JSON.encode(obj)) == {'apiVersion': 'v1', 'kind': 'ConfigMap',
                                            'metadata': {'name': 'cm1'}}


def test_headers():
    assert JSON.headers == {'Accept': JSON_CONTENT_TYPE, 'Content-Type': JSON_CONTENT_TYPE}
    assert PROTOBUF.headers == {'Accept': PROTOBUF_CONTENT_TYPE,
                                'Content-Type': PROTOBUF_CONTENT_TYPE}


def test_json_encoding_is_plain_json():
    data = JSON.encode(ConfigMap(metadata={'name': 'cm1'}))
    assert json.loads(data) == {'apiVersion': 'v1', 'kind': 'ConfigMap',
                                'metadata': {'name': 'cm1'}}


def test_json_keeps_unknown_fields():
    obj = JSON.decode(b'{"kind": "ConfigMap", "extra": {"a": 1}}', ConfigMap)
    assert obj['extra'] == {'a': 1}


@pytest.mark.parametrize('data', [b'', b'{', b'\xff\xfe', b'[]', b'"str"', b'null'])
def test_json_decoding_of_malformed_data(data):
    with pytest.raises(DecodeError) as err:
        JSON.decode(data, ConfigMap)
    assert err.value.stage == 'json'


def test_protobuf_envelope_structure():
    data = PROTOBUF.encode(ConfigMap(metadata={'name': 'cm1'}))
    assert data[:4] == MAGIC == b'k8s\x00'
    container = schemas.parse(schemas.UNKNOWN, data[4:])
    inner = schemas.parse('k8s.io.api.core.v1.ConfigMap', container.raw)
    assert inner.metadata.name == 'cm1'


def test_protobuf_decoding_fills_the_type_meta():
    inner = schemas.to_message('k8s.io.api.core.v1.ConfigMap', {'metadata': {'name': 'cm1'}})
    obj = PROTOBUF.decode(PROTOBUF.wrap(inner.SerializeToString()), ConfigMap)
    assert obj.raw == {'apiVersion': 'v1', 'kind': 'ConfigMap', 'metadata': {'name': 'cm1'}}


def test_protobuf_drops_unknown_fields():
    obj = ConfigMap(metadata={'name': 'cm1'}, extra='field')
    decoded = PROTOBUF.decode(PROTOBUF.encode(obj), ConfigMap)
    assert 'extra' not in decoded


@pytest.mark.parametrize('data', [b'', b'k', b'k8s', b'k8s\x01', b'abcd', b'{"kind": "Status"}'])
def test_protobuf_magic_validation(data):
    with pytest.raises(DecodeError) as err:
        PROTOBUF.decode(data, ConfigMap)
    assert err.value.stage == 'magic'


@pytest.mark.parametrize('container', [
    b'\x0a\x05abc',  # truncated raw bytes.
    b'',  # no raw bytes at all.
    b'\x18\x01',  # only an unknown field.
])
def test_protobuf_malformed_container(container):
    with pytest.raises(DecodeError) as err:
        PROTOBUF.decode(MAGIC + container, ConfigMap)
    assert err.value.stage == 'envelope'


def test_protobuf_empty_inner_message():
    obj = PROTOBUF.decode(PROTOBUF.wrap(b''), ConfigMap)
    assert obj.raw == {'apiVersion': 'v1', 'kind': 'ConfigMap'}


def test_protobuf_malformed_inner_message():
    with pytest.raises(DecodeError) as err:
        PROTOBUF.decode(PROTOBUF.wrap(b'\x0a\x05abc'), ConfigMap)
    assert err.value.stage == 'message'


def test_protobuf_cannot_encode_kinds_without_schemas():
    assert not PROTOBUF.supports(KopfExample)
    with pytest.raises(EncodeError):
        PROTOBUF.encode(KopfExample(metadata={'name': 'kex1'}))


def test_protobuf_cannot_decode_kinds_without_schemas():
    with pytest.raises(DecodeError):
        PROTOBUF.decode(PROTOBUF.wrap(b''), KopfExample)


@pytest.mark.parametrize('metadata', [
    {'name': 123},
    {'labels': 'not-a-mapping'},
    {'creationTimestamp': 'not-a-timestamp'},
    'not-a-mapping',
])
def test_protobuf_encoding_of_mistyped_fields(metadata):
    with pytest.raises(EncodeError):
        PROTOBUF.encode(ConfigMap(metadata=metadata))


def test_json_supports_everything():
    assert JSON.supports(ConfigMap)
    assert JSON.supports(KopfExample)


@pytest.mark.parametrize('content_type, expected', [
    ('application/json', JSON),
    ('application/json; charset=utf-8', JSON),
    ('Application/JSON', JSON),
    ('application/vnd.kubernetes.protobuf', PROTOBUF),
    ('application/vnd.kubernetes.protobuf;stream=watch', PROTOBUF),
    ('text/plain', None),
    ('', None),
    (None, None),
])
def test_codecs_by_content_type(content_type, expected):
    assert for_content_type(content_type) is expected


@pytest.mark.parametrize('model, prefer_protobuf, expected', [
    (ConfigMap, True, PROTOBUF),
    (ConfigMap, False, JSON),
    (KopfExample, True, JSON),
    (KopfExample, False, JSON),
])
def test_codecs_by_model(model, prefer_protobuf, expected):
    assert for_model(model, prefer_protobuf=prefer_protobuf) is expected
