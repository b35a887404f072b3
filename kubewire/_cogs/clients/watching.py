"""
Watching and streaming watch-events.

A watch-stream is a long-lived HTTP response with a sequence of frames,
each frame being one event of the watched collection: ``ADDED``, ``MODIFIED``,
``DELETED``, or ``ERROR`` (and a few service types, e.g. ``BOOKMARK``).

The stream is a pull API for one consumer: every `WatchStream.next` call
reads exactly one frame from the response (blocking until it arrives),
decodes it, and returns the event's type and the typed object.
Nothing is read ahead, buffered, reordered, or replayed.

The stream can be closed at any time from any task or thread. Closing it closes
the HTTP response, so that any read blocked on the connection wakes up promptly
(``aiohttp`` sets a "connection closed" error on the response's content),
and the pending `WatchStream.next` raises `StreamClosedError`.

There is no reconnection or resumption: when the server ends the stream
or the connection drops, `StreamEndedError` is raised, and it is the caller's
decision to start a new watch (e.g. from the last seen resource version).
"""
import asyncio
import enum
import logging
from typing import Any, Generic, Optional, Tuple, Type, cast

import aiohttp

from kubewire._cogs.clients import errors
from kubewire._cogs.helpers import typedefs
from kubewire._cogs.structs import models
from kubewire._cogs.wire import errors as wire_errors, framing, listing


class EventType(str, enum.Enum):
    ADDED = 'ADDED'
    MODIFIED = 'MODIFIED'
    DELETED = 'DELETED'
    ERROR = 'ERROR'

    def __str__(self) -> str:
        return str(self.value)


class WatchingError(Exception):
    """
    Raised when a watch-stream cannot deliver the events anymore.
    """


class StreamClosedError(WatchingError):
    """ The stream is closed locally: by `WatchStream.close` or after an error. """


class StreamEndedError(WatchingError):
    """ The stream is ended by the server, or the connection is lost. """


class WatchStream(Generic[models.ModelT]):

    def __init__(
            self,
            response: aiohttp.ClientResponse,
            *,
            model: Type[models.ModelT],
            content_type: Optional[str] = None,
            max_frame_size: int = framing.DEFAULT_MAX_SIZE,
            description: Optional[str] = None,
            logger: Optional[typedefs.Logger] = None,
    ) -> None:
        super().__init__()
        self._response = response
        self._model = model
        self._content_type = content_type or response.headers.get('Content-Type', '')
        self._description = description or model.__name__
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._loop = asyncio.get_running_loop()
        self._closed = False
        self._released = False
        self._reader = framing.make_reader(self._content_type, response.content,
                                           max_size=max_frame_size)
        self._logger.debug(f"Starting the watch-stream for {self._description}.")

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'open'
        return f'<{self.__class__.__name__} for {self._description}: {state}>'

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def content_type(self) -> str:
        return self._content_type

    def __aiter__(self) -> "WatchStream[models.ModelT]":
        return self

    async def __anext__(self) -> Tuple[EventType, models.ModelT]:
        try:
            return await self.next()
        except (StreamClosedError, StreamEndedError):
            raise StopAsyncIteration

    async def __aenter__(self) -> "WatchStream[models.ModelT]":
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()

    async def next(self) -> Tuple[EventType, models.ModelT]:
        """
        Wait for the next event and return its type and the decoded object.

        The events of unknown types are skipped (with a warning),
        so the call continues to wait for the next meaningful one.
        """
        while True:
            if self._closed:
                raise StreamClosedError(f"The watch-stream for {self._description} is closed.")

            try:
                frame = await self._reader.read()
            except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
                self._check_closed(e)
                self._abort()
                raise StreamEndedError(f"The watch-stream for {self._description} "
                                       f"is disconnected: {e}") from e
            except wire_errors.DecodeError as e:
                self._check_closed(e)
                self._abort()
                raise

            # The data could be already buffered before the closing, but it must not be delivered.
            self._check_closed(None)

            if frame is None:
                self._abort()
                raise StreamEndedError(f"The watch-stream for {self._description} "
                                       f"is ended by the server.")

            try:
                raw_type, item = listing.decode_event(frame, self._content_type)
            except wire_errors.DecodeError:
                self._abort()
                raise

            if raw_type == EventType.ERROR:
                self._abort()
                raise self._make_error(item)

            try:
                event_type = EventType(raw_type)
            except ValueError:
                self._logger.warning(f"Ignoring an unsupported event type: {raw_type!r}")
                continue

            try:
                obj = item.materialize(self._model)
            except wire_errors.DecodeError:
                self._abort()
                raise

            return event_type, obj

    def close(self) -> None:
        """
        Close the stream; safe to call from any task or thread, and repeatedly.
        """
        if self._closed:
            return
        self._closed = True

        try:
            current_loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            current_loop = None

        if current_loop is self._loop:
            self._release()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._release)

    def _abort(self) -> None:
        self._closed = True
        self._release()

    def _release(self) -> None:
        if not self._released:
            self._released = True
            self._response.close()
            self._logger.debug(f"Stopping the watch-stream for {self._description}.")

    def _check_closed(self, exc: Optional[BaseException]) -> None:
        if self._closed:
            raise StreamClosedError(f"The watch-stream for {self._description} "
                                    f"is closed.") from exc

    def _make_error(self, item: listing.DeferredItem) -> Exception:
        try:
            status = item.materialize(models.Status)
        except wire_errors.DecodeError as e:
            return errors.StatusDecodeError(f"Cannot decode the error event: {e}",
                                            stage=e.stage, status=500)
        raw = status.raw
        payload = cast(errors.RawStatus, raw) if raw.get('kind') == 'Status' else None
        code = raw.get('code')
        return errors.status_error(payload, status=code if isinstance(code, int) and code else 500)
