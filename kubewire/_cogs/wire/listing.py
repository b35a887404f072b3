"""
Splitting of the collections & events into deferred items.

The items of a list (and the objects of the watch-events) are not decoded
into any specific kind when the response arrives: only their metadata are.
The kind is known only to the caller, who then materializes the items
one by one (`DeferredItem.materialize`) into the model classes it expects.

For JSON, the items are kept as the already parsed dicts. For protobuf,
the list's bytes are walked field by field (see `varints`), and each item
keeps the bytes of its own message. Any malformed item fails the whole list:
a decoded list always has exactly as many items as the response had.
"""
import dataclasses
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, cast

from kubewire._cogs.structs import bodies, models
from kubewire._cogs.wire import codecs, errors, schemas, varints


@dataclasses.dataclass(eq=False)
class DeferredItem:
    """
    A list's item or an event's object: with its metadata, but not yet typed.
    """
    content_type: str
    payload: codecs.Payload = dataclasses.field(repr=False)
    metadata: bodies.RawMeta
    _materialized: Optional[models.Model] = dataclasses.field(default=None, init=False, repr=False)

    @property
    def name(self) -> Optional[str]:
        return self.metadata.get('name')

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.get('namespace')

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.get('resourceVersion')

    @property
    def materialized(self) -> bool:
        return self._materialized is not None

    def materialize(self, model: Type[models.ModelT]) -> models.ModelT:
        """
        Decode the item into the specific model; only once.

        Repeated calls with the same model return the very same object.
        An attempt to re-interpret the item as another model is an error.
        """
        if self._materialized is not None:
            if type(self._materialized) is not model:
                raise TypeError(f"The item is already materialized as "
                                f"{type(self._materialized).__name__}, not as {model.__name__}.")
            return cast(models.ModelT, self._materialized)

        codec = codecs.for_content_type(self.content_type)
        if codec is None:
            raise errors.DecodeError(f"Unsupported content type: {self.content_type!r}",
                                     stage=errors.MESSAGE)
        obj = codec.materialize(self.payload, model)
        self._materialized = obj
        return obj


@dataclasses.dataclass
class DecodedList:
    metadata: bodies.RawListMeta
    items: List[DeferredItem]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[DeferredItem]:
        return iter(self.items)

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.get('resourceVersion')

    def materialize(self, model: Type[models.ModelT]) -> List[models.ModelT]:
        return [item.materialize(model) for item in self.items]


def decode_list(data: bytes, content_type: str) -> DecodedList:
    codec = codecs.for_content_type(content_type)
    if codec is codecs.JSON:
        return _decode_json_list(cast(bodies.RawList, codecs.JSON.load(data)))
    elif codec is codecs.PROTOBUF:
        return _decode_protobuf_list(codecs.PROTOBUF.unwrap(data))
    else:
        raise errors.DecodeError(f"Unsupported content type: {content_type!r}", stage=errors.LIST)


def decode_event(frame: bytes, content_type: str) -> Tuple[bodies.RawEventType, DeferredItem]:
    """
    Decode one frame of a watch-stream into its type and a deferred object.

    The type is returned as sent by the server, and is not validated here:
    the unknown types of future servers are for the caller to skip or fail.
    """
    codec = codecs.for_content_type(content_type)
    if codec is codecs.JSON:
        raw_event = cast(bodies.RawEvent, codecs.JSON.load(frame))
        raw_type = raw_event.get('type')
        raw_object = raw_event.get('object')
        if not isinstance(raw_type, str) or not isinstance(raw_object, dict):
            raise errors.DecodeError(f"Malformed watch-event: {raw_event!r}", stage=errors.EVENT)
        return cast(bodies.RawEventType, raw_type), _json_item(raw_object, index=None)
    elif codec is codecs.PROTOBUF:
        msg = schemas.parse(schemas.WATCH_EVENT, codecs.PROTOBUF.unwrap(frame), stage=errors.EVENT)
        raw_type = msg.type  # type: ignore
        if not raw_type:
            raise errors.DecodeError("A watch-event has no type.", stage=errors.EVENT)
        # The event's object is a complete envelope on its own, with the magic and the container.
        payload = codecs.PROTOBUF.unwrap(msg.object.raw)  # type: ignore
        return cast(bodies.RawEventType, raw_type), _protobuf_item(payload, index=None)
    else:
        raise errors.DecodeError(f"Unsupported content type: {content_type!r}", stage=errors.EVENT)


def _decode_json_list(body: bodies.RawList) -> DecodedList:
    metadata = body.get('metadata') or {}
    raw_items = body.get('items') or []
    if not isinstance(metadata, dict):
        raise errors.DecodeError("The list's metadata is not an object.", stage=errors.LIST)
    if not isinstance(raw_items, list):
        raise errors.DecodeError("The list's items are not an array.", stage=errors.LIST)

    # The items usually have no apiVersion/kind, only the list has them.
    api_version = body.get('apiVersion')
    list_kind = body.get('kind')
    kind = list_kind[:-4] if list_kind and list_kind.endswith('List') else None

    items: List[DeferredItem] = []
    for index, raw_item in enumerate(raw_items):
        if isinstance(raw_item, dict):
            if api_version:
                raw_item.setdefault('apiVersion', api_version)
            if kind:
                raw_item.setdefault('kind', kind)
        items.append(_json_item(raw_item, index=index))
    return DecodedList(metadata=cast(bodies.RawListMeta, metadata), items=items)


def _decode_protobuf_list(data: bytes) -> DecodedList:
    metadata: Dict[str, Any] = {}
    items: List[DeferredItem] = []
    for number, wire_type, value in varints.iter_fields(data, stage=errors.LIST):
        if number in (1, 2) and wire_type != varints.WIRE_LENGTH:
            raise errors.DecodeError(f"Unexpected wire type {wire_type} of field #{number}.",
                                     stage=errors.LIST)
        elif number == 1:
            msg = schemas.parse(schemas.LIST_META, cast(bytes, value), stage=errors.LIST)
            metadata = schemas.from_message(msg)
        elif number == 2:
            items.append(_protobuf_item(cast(bytes, value), index=len(items)))
        # Other fields are not ours to interpret; they are skipped as the protobuf parsers do.
    return DecodedList(metadata=cast(bodies.RawListMeta, metadata), items=items)


def _json_item(raw_item: Any, *, index: Optional[int]) -> DeferredItem:
    where = f"Item #{index}" if index is not None else "The object"
    if not isinstance(raw_item, dict):
        raise errors.DecodeError(f"{where} is not an object.", stage=errors.LIST)
    body = cast(bodies.RawBody, raw_item)
    metadata = body.get('metadata') or {}
    if not isinstance(metadata, dict):
        raise errors.DecodeError(f"{where} has malformed metadata.", stage=errors.LIST)
    return DeferredItem(
        content_type=codecs.JSON_CONTENT_TYPE,
        payload=raw_item,
        metadata=cast(bodies.RawMeta, metadata),
    )


def _protobuf_item(data: bytes, *, index: Optional[int]) -> DeferredItem:
    where = f"item #{index}" if index is not None else "the object"
    try:
        probe = schemas.parse(schemas.OBJECT_PROBE, data, stage=errors.LIST)
    except errors.DecodeError as e:
        raise errors.DecodeError(f"Malformed {where}: {e}", stage=errors.LIST) from e
    metadata = schemas.from_message(probe).get('metadata', {})
    return DeferredItem(
        content_type=codecs.PROTOBUF_CONTENT_TYPE,
        payload=data,
        metadata=cast(bodies.RawMeta, metadata),
    )
