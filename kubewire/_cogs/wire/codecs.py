"""
The codecs: how the objects are put on the wire and taken off it.

Two encodings are supported, as negotiated via ``Content-Type`` & ``Accept``:

* JSON (``application/json``): the bodies as they are, with no envelope.
* Protobuf (``application/vnd.kubernetes.protobuf``): the kind's message,
  serialized and wrapped into an opaque container message, which is then
  prefixed with the 4 magic bytes::

    b'k8s\\x00' + Unknown(raw=ConfigMap(...).SerializeToString()).SerializeToString()

The container does not say which kind is inside: the URL does it for the server,
and the caller does it for the client (by the model class to decode into).
"""
import json
from typing import Any, Dict, Mapping, Optional, Type, Union, cast

from kubewire._cogs.structs import models
from kubewire._cogs.wire import errors, schemas

MAGIC = b'k8s\x00'

JSON_CONTENT_TYPE = 'application/json'
PROTOBUF_CONTENT_TYPE = 'application/vnd.kubernetes.protobuf'

# A not yet materialized body: a parsed JSON fragment, or the inner protobuf message's bytes.
Payload = Union[bytes, Dict[str, Any]]


class Codec:
    content_type: str

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.content_type}>'

    @property
    def headers(self) -> Mapping[str, str]:
        return {'Accept': self.content_type, 'Content-Type': self.content_type}

    def supports(self, model: Type[models.Model]) -> bool:
        raise NotImplementedError

    def encode(self, obj: models.Model) -> bytes:
        raise NotImplementedError

    def decode(self, data: bytes, model: Type[models.ModelT]) -> models.ModelT:
        raise NotImplementedError

    def materialize(self, payload: Payload, model: Type[models.ModelT]) -> models.ModelT:
        raise NotImplementedError


class JsonCodec(Codec):
    content_type = JSON_CONTENT_TYPE

    def supports(self, model: Type[models.Model]) -> bool:
        return True

    def encode(self, obj: models.Model) -> bytes:
        schema = type(obj).schema
        body = schemas.canonicalize(schema, obj.raw) if schema is not None else obj.raw
        try:
            return json.dumps(body, separators=(',', ':')).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise errors.EncodeError(f"Cannot encode {obj!r} as JSON: {e}") from e

    def decode(self, data: bytes, model: Type[models.ModelT]) -> models.ModelT:
        return self.materialize(self.load(data), model)

    def materialize(self, payload: Payload, model: Type[models.ModelT]) -> models.ModelT:
        body = self.load(payload) if isinstance(payload, bytes) else payload
        return model.from_raw(body)

    def load(self, data: bytes) -> Dict[str, Any]:
        try:
            body = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise errors.DecodeError(f"Malformed JSON: {e}", stage=errors.JSON) from e
        if not isinstance(body, dict):
            raise errors.DecodeError(f"A JSON object is expected, got {type(body).__name__}.",
                                     stage=errors.JSON)
        return body


class ProtobufCodec(Codec):
    content_type = PROTOBUF_CONTENT_TYPE

    def supports(self, model: Type[models.Model]) -> bool:
        return model.schema is not None

    def encode(self, obj: models.Model) -> bytes:
        schema = type(obj).schema
        if schema is None:
            raise errors.EncodeError(f"{type(obj).__name__} has no protobuf schema; use JSON.")
        msg = schemas.to_message(schema, obj.raw)
        return self.wrap(msg.SerializeToString())

    def decode(self, data: bytes, model: Type[models.ModelT]) -> models.ModelT:
        return self.materialize(self.unwrap(data), model)

    def materialize(self, payload: Payload, model: Type[models.ModelT]) -> models.ModelT:
        if model.schema is None:
            raise errors.DecodeError(f"{model.__name__} has no protobuf schema.",
                                     stage=errors.MESSAGE)
        if not isinstance(payload, bytes):
            raise errors.DecodeError("Protobuf payloads must be bytes.", stage=errors.MESSAGE)
        msg = schemas.parse(model.schema, payload, stage=errors.MESSAGE)

        # The protobuf messages carry no type meta; the class knows it, the same as the server.
        return model(schemas.from_message(msg))

    def wrap(self, data: bytes) -> bytes:
        container = schemas.get_message_class(schemas.UNKNOWN)(raw=data)
        return MAGIC + container.SerializeToString()

    def unwrap(self, data: bytes) -> bytes:
        if len(data) < len(MAGIC):
            raise errors.DecodeError(f"The data are too short for an envelope: {len(data)} bytes.",
                                     stage=errors.MAGIC)
        if data[:len(MAGIC)] != MAGIC:
            raise errors.DecodeError(f"Unexpected magic bytes: {data[:len(MAGIC)]!r}",
                                     stage=errors.MAGIC)
        container = schemas.parse(schemas.UNKNOWN, data[len(MAGIC):], stage=errors.ENVELOPE)
        if not container.HasField('raw'):
            raise errors.DecodeError("The envelope has no inner message.", stage=errors.ENVELOPE)
        return cast(bytes, container.raw)  # type: ignore


JSON = JsonCodec()
PROTOBUF = ProtobufCodec()
CODECS = (JSON, PROTOBUF)


def for_content_type(content_type: Optional[str]) -> Optional[Codec]:
    """ Find a codec by the content type, ignoring its parameters (e.g. the charset). """
    mime = (content_type or '').split(';', 1)[0].strip().lower()
    for codec in CODECS:
        if codec.content_type == mime:
            return codec
    return None


def for_model(model: Type[models.Model], *, prefer_protobuf: bool = True) -> Codec:
    return PROTOBUF if prefer_protobuf and PROTOBUF.supports(model) else JSON
