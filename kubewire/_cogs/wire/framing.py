"""
Framing of the watch-streams: reading one event's bytes at a time.

The framing depends on the content type of the stream:

* JSON: a sequence of top-level JSON objects, usually newline-separated
  (though the separators are not required). Each frame is decoded right
  after the previous one, as soon as it is complete in the buffer. A frame
  that cannot become valid with more data is a `DecodeError` immediately,
  without waiting for the end of the stream.
* Protobuf: each frame is prefixed with its length as a 4-byte big-endian
  unsigned integer; the frame itself is a binary envelope of the event.

The readers never read ahead more than needed for the next frame
(except for the JSON buffering within the received chunks).
A clean end of the stream at a frame's boundary is `None`;
an end of the stream in the middle of a frame is a `DecodeError`.
"""
import asyncio
import encodings.utf_8
import json
import re
import struct
from typing import Optional

import aiohttp

from kubewire._cogs.wire import codecs, errors

LENGTH_PREFIX = struct.Struct('>I')
DEFAULT_MAX_SIZE = 64 * 1024 * 1024
PARTIAL_TOKEN = re.compile(r'[\w.+-]*')  # an unfinished number or literal.


class FrameReader:
    async def read(self) -> Optional[bytes]:
        raise NotImplementedError


class JsonFrameReader(FrameReader):

    def __init__(
            self,
            content: aiohttp.StreamReader,
            *,
            max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        super().__init__()
        self._content = content
        self._max_size = max_size
        self._decoder = encodings.utf_8.IncrementalDecoder()
        self._json = json.JSONDecoder()
        self._buffer = ''
        self._ready = True  # whether the buffer can hold a complete frame since the last attempt.
        self._eof = False

    async def read(self) -> Optional[bytes]:
        while True:
            text = self._buffer.lstrip()
            if text and text[0] != '{':
                raise errors.DecodeError(f"A watch-event must be a JSON object: {text[:20]!r}",
                                         stage=errors.FRAME)
            if text and self._ready:
                try:
                    _, end = self._json.raw_decode(text)
                except json.JSONDecodeError as e:
                    if not is_truncated(text, e):
                        raise errors.DecodeError(f"Malformed watch-event: {e}",
                                                 stage=errors.FRAME) from e
                    self._ready = False
                else:
                    self._buffer = text[end:]
                    return text[:end].encode('utf-8')

            if self._eof and text:
                raise errors.DecodeError(f"Truncated or malformed watch-event: {text[:20]!r}",
                                         stage=errors.FRAME)
            elif self._eof:
                return None
            elif len(text) > self._max_size:
                raise errors.DecodeError(f"The watch-event is above {self._max_size} bytes.",
                                         stage=errors.FRAME)

            data = await self._content.readany()
            try:
                chunk = self._decoder.decode(data, final=not data)
            except UnicodeDecodeError as e:
                raise errors.DecodeError(f"Malformed UTF-8: {e}", stage=errors.FRAME) from e

            # An object can only get complete (or visibly broken) with a closing brace or a newline.
            self._buffer = text + chunk
            self._ready = not data or '}' in chunk or '\n' in chunk
            self._eof = not data


def is_truncated(text: str, e: json.JSONDecodeError) -> bool:
    """
    Check if the JSON text fails only because its end has not arrived yet.

    The decoding stops either at the very end of the text, or inside the last
    token (a string, a number, or a literal such as ``true``). Any failure
    followed by other tokens means the text is malformed, not incomplete.
    """
    tail = text[e.pos:]
    if e.msg.startswith('Unterminated string'):
        return True
    elif e.msg.startswith('Invalid \\uXXXX escape'):
        return len(tail) < len('\\uXXXX')
    else:
        return PARTIAL_TOKEN.fullmatch(tail) is not None


class LengthPrefixedFrameReader(FrameReader):

    def __init__(
            self,
            content: aiohttp.StreamReader,
            *,
            max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        super().__init__()
        self._content = content
        self._max_size = max_size

    async def read(self) -> Optional[bytes]:
        try:
            header = await self._content.readexactly(LENGTH_PREFIX.size)
        except asyncio.IncompleteReadError as e:
            if not e.partial:
                return None
            raise errors.DecodeError("Truncated frame length.", stage=errors.FRAME) from e

        length, = LENGTH_PREFIX.unpack(header)
        if length > self._max_size:
            raise errors.DecodeError(f"The frame is above {self._max_size} bytes: {length}.",
                                     stage=errors.FRAME)

        try:
            return await self._content.readexactly(length)
        except asyncio.IncompleteReadError as e:
            raise errors.DecodeError(f"Truncated frame: {len(e.partial)} of {length} bytes.",
                                     stage=errors.FRAME) from e


def make_reader(
        content_type: str,
        content: aiohttp.StreamReader,
        *,
        max_size: int = DEFAULT_MAX_SIZE,
) -> FrameReader:
    codec = codecs.for_content_type(content_type)
    if codec is codecs.JSON:
        return JsonFrameReader(content, max_size=max_size)
    elif codec is codecs.PROTOBUF:
        return LengthPrefixedFrameReader(content, max_size=max_size)
    else:
        raise errors.DecodeError(f"Unsupported stream content type: {content_type!r}",
                                 stage=errors.FRAME)
