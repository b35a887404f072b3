"""
Protobuf schemas of the known kinds, and their conversion to/from the dicts.

The message types are declared here in a compact form and compiled at import
time into a private descriptor pool, the same way as ``protoc`` would generate
them from the ``.proto`` files (but with no generated code to keep in sync).
The field names & numbers follow the API's own ``generated.proto`` files,
so the messages are wire-compatible with the server.

The conversion goes via the JSON-shaped dicts, so that the objects look
the same regardless of the encoding they were received in:

* timestamps (``Time`` messages) are RFC-3339 strings, e.g. ``2020-12-31T23:59:59Z``;
* 64-bit integers are ints (protobuf's JSON mapping makes them strings);
* byte fields are base64-encoded strings (as in JSON);
* the unset fields are absent; the fields unknown to the schema are dropped.
"""
import datetime
import functools
from typing import Any, Dict, List, Mapping, Tuple, Type, Union

import iso8601
from google.protobuf import descriptor, descriptor_pb2, descriptor_pool, json_format, \
                            message, message_factory

from kubewire._cogs.wire import errors

RUNTIME = 'k8s.io.apimachinery.pkg.runtime'
META = 'k8s.io.apimachinery.pkg.apis.meta.v1'
CORE = 'k8s.io.api.core.v1'
PROBES = 'kubewire.probes'

TIME = f'{META}.Time'
OBJECT_META = f'{META}.ObjectMeta'
LIST_META = f'{META}.ListMeta'
STATUS = f'{META}.Status'
WATCH_EVENT = f'{META}.WatchEvent'
UNKNOWN = f'{RUNTIME}.Unknown'
RAW_EXTENSION = f'{RUNTIME}.RawExtension'
OBJECT_PROBE = f'{PROBES}.ObjectProbe'

# A field's type is a scalar's name, a message's full name, ``[type]`` for repeated fields,
# or ``{'string': type}`` for the string-keyed maps.
FieldType = Union[str, List[str], Dict[str, str]]
Fields = List[Tuple[str, int, FieldType]]

SCALARS = {
    'string': descriptor_pb2.FieldDescriptorProto.TYPE_STRING,
    'bytes': descriptor_pb2.FieldDescriptorProto.TYPE_BYTES,
    'bool': descriptor_pb2.FieldDescriptorProto.TYPE_BOOL,
    'int32': descriptor_pb2.FieldDescriptorProto.TYPE_INT32,
    'int64': descriptor_pb2.FieldDescriptorProto.TYPE_INT64,
}

INT64_TYPES = {
    descriptor.FieldDescriptor.TYPE_INT64,
    descriptor.FieldDescriptor.TYPE_UINT64,
    descriptor.FieldDescriptor.TYPE_SINT64,
    descriptor.FieldDescriptor.TYPE_FIXED64,
    descriptor.FieldDescriptor.TYPE_SFIXED64,
}

# The files in the order of their dependencies: (file name, package, dependencies, messages).
FILES: List[Tuple[str, str, List[str], Dict[str, Fields]]] = [
    ('k8s.io/apimachinery/pkg/runtime/generated.proto', RUNTIME, [], {
        'RawExtension': [
            ('raw', 1, 'bytes'),
        ],
        # The opaque container of the binary envelope: the serialized message of any kind.
        'Unknown': [
            ('raw', 1, 'bytes'),
        ],
    }),
    ('k8s.io/apimachinery/pkg/apis/meta/v1/generated.proto', META, [
        'k8s.io/apimachinery/pkg/runtime/generated.proto',
    ], {
        'Time': [
            ('seconds', 1, 'int64'),
            ('nanos', 2, 'int32'),
        ],
        'OwnerReference': [
            ('kind', 1, 'string'),
            ('name', 3, 'string'),
            ('uid', 4, 'string'),
            ('apiVersion', 5, 'string'),
            ('controller', 6, 'bool'),
            ('blockOwnerDeletion', 7, 'bool'),
        ],
        'ObjectMeta': [
            ('name', 1, 'string'),
            ('generateName', 2, 'string'),
            ('namespace', 3, 'string'),
            ('selfLink', 4, 'string'),
            ('uid', 5, 'string'),
            ('resourceVersion', 6, 'string'),
            ('generation', 7, 'int64'),
            ('creationTimestamp', 8, TIME),
            ('deletionTimestamp', 9, TIME),
            ('deletionGracePeriodSeconds', 10, 'int64'),
            ('labels', 11, {'string': 'string'}),
            ('annotations', 12, {'string': 'string'}),
            ('ownerReferences', 13, [f'{META}.OwnerReference']),
            ('finalizers', 14, ['string']),
        ],
        'ListMeta': [
            ('selfLink', 1, 'string'),
            ('resourceVersion', 2, 'string'),
            ('continue', 3, 'string'),
            ('remainingItemCount', 4, 'int64'),
        ],
        'StatusCause': [
            ('reason', 1, 'string'),
            ('message', 2, 'string'),
            ('field', 3, 'string'),
        ],
        'StatusDetails': [
            ('name', 1, 'string'),
            ('group', 2, 'string'),
            ('kind', 3, 'string'),
            ('causes', 4, [f'{META}.StatusCause']),
            ('retryAfterSeconds', 5, 'int32'),
            ('uid', 6, 'string'),
        ],
        'Status': [
            ('metadata', 1, LIST_META),
            ('status', 2, 'string'),
            ('message', 3, 'string'),
            ('reason', 4, 'string'),
            ('details', 5, f'{META}.StatusDetails'),
            ('code', 6, 'int32'),
        ],
        'WatchEvent': [
            ('type', 1, 'string'),
            ('object', 2, RAW_EXTENSION),
        ],
    }),
    ('k8s.io/api/core/v1/generated.proto', CORE, [
        'k8s.io/apimachinery/pkg/apis/meta/v1/generated.proto',
    ], {
        'ConfigMap': [
            ('metadata', 1, OBJECT_META),
            ('data', 2, {'string': 'string'}),
            ('binaryData', 3, {'string': 'bytes'}),
            ('immutable', 4, 'bool'),
        ],
        'Secret': [
            ('metadata', 1, OBJECT_META),
            ('data', 2, {'string': 'bytes'}),
            ('type', 3, 'string'),
            ('stringData', 4, {'string': 'string'}),
            ('immutable', 5, 'bool'),
        ],
        'NamespaceSpec': [
            ('finalizers', 1, ['string']),
        ],
        'NamespaceStatus': [
            ('phase', 1, 'string'),
        ],
        'Namespace': [
            ('metadata', 1, OBJECT_META),
            ('spec', 2, f'{CORE}.NamespaceSpec'),
            ('status', 3, f'{CORE}.NamespaceStatus'),
        ],
        'ConfigMapList': [
            ('metadata', 1, LIST_META),
            ('items', 2, [f'{CORE}.ConfigMap']),
        ],
        'SecretList': [
            ('metadata', 1, LIST_META),
            ('items', 2, [f'{CORE}.Secret']),
        ],
        'NamespaceList': [
            ('metadata', 1, LIST_META),
            ('items', 2, [f'{CORE}.Namespace']),
        ],
    }),
    # Not a server's schema: it reads only the metadata of any object, and skips the rest.
    ('kubewire/probes.proto', PROBES, [
        'k8s.io/apimachinery/pkg/apis/meta/v1/generated.proto',
    ], {
        'ObjectProbe': [
            ('metadata', 1, OBJECT_META),
        ],
    }),
]


def _set_type(field: descriptor_pb2.FieldDescriptorProto, type_: str) -> None:
    if type_ in SCALARS:
        field.type = SCALARS[type_]
    else:
        field.type = descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE
        field.type_name = f'.{type_}'


def _add_field(
        msg: descriptor_pb2.DescriptorProto,
        scope: str,
        name: str,
        number: int,
        type_: FieldType,
) -> None:
    field = msg.field.add(name=name, number=number, json_name=name)
    if isinstance(type_, dict):
        # Maps are repeated nested entries, named the same way as protoc names them.
        (key_type, value_type), = type_.items()
        entry = msg.nested_type.add(name=f'{name[0].upper()}{name[1:]}Entry')
        entry.options.map_entry = True
        _add_field(entry, f'{scope}.{entry.name}', 'key', 1, key_type)
        _add_field(entry, f'{scope}.{entry.name}', 'value', 2, value_type)
        field.label = descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED
        _set_type(field, f'{scope}.{entry.name}')
    elif isinstance(type_, list):
        field.label = descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED
        _set_type(field, type_[0])
    else:
        field.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL
        _set_type(field, type_)


def _build_pool() -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.DescriptorPool()
    for filename, package, dependencies, messages in FILES:
        file = descriptor_pb2.FileDescriptorProto(name=filename, package=package, syntax='proto2')
        file.dependency.extend(dependencies)
        for msg_name, fields in messages.items():
            msg = file.message_type.add(name=msg_name)
            for name, number, type_ in fields:
                _add_field(msg, f'{package}.{msg_name}', name, number, type_)
        pool.AddSerializedFile(file.SerializeToString())
    return pool


POOL = _build_pool()


@functools.lru_cache(maxsize=None)
def get_message_class(name: str) -> Type[message.Message]:
    try:
        return message_factory.GetMessageClass(POOL.FindMessageTypeByName(name))
    except KeyError:
        raise LookupError(f"No protobuf schema is known as {name!r}.") from None


def parse(name: str, data: bytes, *, stage: str = errors.MESSAGE) -> message.Message:
    msg = get_message_class(name)()
    try:
        msg.ParseFromString(data)
    except message.DecodeError as e:
        raise errors.DecodeError(f"Cannot parse {name}: {e}", stage=stage) from e
    return msg


def to_message(name: str, body: Mapping[str, Any]) -> message.Message:
    msg = get_message_class(name)()
    try:
        prepared = _prepare(msg.DESCRIPTOR, body)
        json_format.ParseDict(prepared, msg, ignore_unknown_fields=True)
    except (json_format.ParseError, iso8601.ParseError, TypeError, ValueError) as e:
        raise errors.EncodeError(f"Cannot convert the body to {name}: {e}") from e
    return msg


def from_message(msg: message.Message) -> Dict[str, Any]:
    data = json_format.MessageToDict(msg, preserving_proto_field_name=True)
    return _restore(msg.DESCRIPTOR, data)


def canonicalize(name: str, body: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Drop the nulls, the empty maps, and the empty lists of the known fields.

    Protobuf cannot tell an empty map or list from an absent one, so the API
    omits them in all encodings. The bodies of the kinds with a schema follow
    the same canonical form, so that they are the same in both encodings.
    The fields unknown to the schema are left as they are.
    """
    return _canonicalize(get_message_class(name).DESCRIPTOR, body)


def _canonicalize(desc: descriptor.Descriptor, body: Mapping[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in body.items():
        field = desc.fields_by_name.get(key)
        if field is None:
            result[key] = value
        elif value is None:
            pass
        elif field.label == field.LABEL_REPEATED and not value:
            pass
        elif field.message_type is None or _is_map(field) or field.message_type.full_name == TIME:
            result[key] = value
        elif isinstance(value, list):
            result[key] = [_canonicalize(field.message_type, item)
                           if isinstance(item, Mapping) else item for item in value]
        elif isinstance(value, Mapping):
            result[key] = _canonicalize(field.message_type, value)
        else:
            result[key] = value
    return result


def _is_map(field: descriptor.FieldDescriptor) -> bool:
    return field.message_type is not None and field.message_type.GetOptions().map_entry


def _prepare(desc: descriptor.Descriptor, body: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(body, Mapping):
        raise TypeError(f"{desc.full_name} must be a mapping, got {body!r}")
    result: Dict[str, Any] = {}
    for key, value in body.items():
        field = desc.fields_by_name.get(key)
        if field is None or value is None:
            continue
        elif field.message_type is None or _is_map(field):
            result[key] = value
        elif field.message_type.full_name == TIME:
            result[key] = _time_to_dict(value)
        elif isinstance(value, list):
            result[key] = [_prepare(field.message_type, item) for item in value]
        else:
            result[key] = _prepare(field.message_type, value)
    return result


def _restore(desc: descriptor.Descriptor, data: Mapping[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in data.items():
        field = desc.fields_by_name[key]
        if _is_map(field):
            result[key] = value
        elif field.message_type is not None and field.message_type.full_name == TIME:
            result[key] = _time_from_dict(value)
        elif field.message_type is not None and isinstance(value, list):
            result[key] = [_restore(field.message_type, item) for item in value]
        elif field.message_type is not None:
            result[key] = _restore(field.message_type, value)
        elif field.type in INT64_TYPES and isinstance(value, list):
            result[key] = [int(item) for item in value]
        elif field.type in INT64_TYPES:
            result[key] = int(value)
        else:
            result[key] = value
    return result


def _time_to_dict(value: Any) -> Dict[str, int]:
    dt = value if isinstance(value, datetime.datetime) else iso8601.parse_date(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return {'seconds': int(dt.timestamp()), 'nanos': dt.microsecond * 1000}


def _time_from_dict(value: Mapping[str, Any]) -> str:
    seconds = int(value.get('seconds', 0))
    dt = datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%SZ')
