"""
A low-level walk over the protobuf wire format, field by field.

It is used where the generic parsing of the whole message does not fit:
e.g. to split a collection into the individual items without parsing them
into any specific kind (which is not known at that time).

Every structural problem (a truncated varint, a length beyond the data,
an unsupported wire type) is a `DecodeError`: the walk never guesses.
"""
from typing import Iterator, Tuple, Union

from kubewire._cogs.wire import errors

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH = 2
WIRE_FIXED32 = 5

MAX_VARINT_BYTES = 10  # 64 bits in 7-bit groups.


def read_varint(data: bytes, pos: int, *, stage: str = errors.LIST) -> Tuple[int, int]:
    """ Read a varint at the position; return the value and the next position. """
    result = 0
    for index in range(MAX_VARINT_BYTES):
        if pos + index >= len(data):
            raise errors.DecodeError(f"Truncated varint at byte {pos}.", stage=stage)
        byte = data[pos + index]
        result |= (byte & 0x7F) << (7 * index)
        if not byte & 0x80:
            return result, pos + index + 1
    raise errors.DecodeError(f"Overlong varint at byte {pos}.", stage=stage)


def iter_fields(
        data: bytes,
        *,
        stage: str = errors.LIST,
) -> Iterator[Tuple[int, int, Union[int, bytes]]]:
    """
    Iterate over the top-level fields: yield their numbers, wire types, values.

    The values are ints for varints, and the raw bytes for all other types.
    A clean end of the data at a field's boundary ends the iteration.
    """
    pos = 0
    while pos < len(data):
        tag, pos = read_varint(data, pos, stage=stage)
        number, wire_type = tag >> 3, tag & 0x07
        if number == 0:
            raise errors.DecodeError(f"Invalid field number 0 at byte {pos}.", stage=stage)

        value: Union[int, bytes]
        if wire_type == WIRE_VARINT:
            value, pos = read_varint(data, pos, stage=stage)
            yield number, wire_type, value
            continue
        elif wire_type == WIRE_FIXED64:
            size = 8
        elif wire_type == WIRE_FIXED32:
            size = 4
        elif wire_type == WIRE_LENGTH:
            size, pos = read_varint(data, pos, stage=stage)
        else:
            raise errors.DecodeError(f"Unsupported wire type {wire_type} of field #{number}.",
                                     stage=stage)

        if pos + size > len(data):
            raise errors.DecodeError(f"Truncated field #{number}: {size} bytes expected, "
                                     f"{len(data) - pos} available.", stage=stage)
        value = data[pos:pos + size]
        pos += size
        yield number, wire_type, value
