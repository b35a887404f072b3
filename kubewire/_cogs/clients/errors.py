"""
API errors.

The underlying client library (now, ``aiohttp``) can be replaced in the future.
We cannot rely on exposing its exceptions to the callers of the client.
Hence, we have our own hierarchy of exceptions for the API errors.

Low-level errors, such as the network connectivity issues, SSL/HTTPS issues,
etc, are escalated from the client library as is, since they are related not
to the domain of the API, but rather to the networking and encryption.

Some selected reasons of the API errors are made into their own classes,
so that they could be intercepted and handled by the callers.
All other reasons are raised as the base error class and are indistinguishable
from each other (except via the exception's fields).

Unlike the underlying client library's errors, the API errors contain more
information about the reasons -- as provided by the API in its response bodies
(in either encoding), not guessed only by HTTP statuses alone.

If the error's body cannot be decoded at all, it is not masked as a generic
API error: `StatusDecodeError` is raised instead, still carrying the HTTP status.
"""
import collections.abc
from typing import Collection, Optional, Type, cast

import aiohttp
from typing_extensions import Literal, TypedDict

from kubewire._cogs.structs import models
from kubewire._cogs.wire import codecs, errors as wire_errors


class RawStatusCause(TypedDict, total=False):
    field: str
    reason: str
    message: str


class RawStatusDetails(TypedDict, total=False):
    name: str
    uid: str
    retryAfterSeconds: int
    kind: str
    group: str
    causes: Collection[RawStatusCause]


class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    code: int
    status: Literal["Success", "Failure"]
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):

    def __init__(
            self,
            payload: Optional[RawStatus],
            *,
            status: int,
    ) -> None:
        message = payload.get('message') if payload else None
        super().__init__(message or f"HTTP {status}", payload)
        self._status = status
        self._payload = payload

    def __str__(self) -> str:
        return self.message or f"HTTP {self._status}"

    @property
    def status(self) -> int:
        return self._status

    @property
    def payload(self) -> Optional[RawStatus]:
        return self._payload

    @property
    def code(self) -> Optional[int]:
        return self._payload.get('code') if self._payload else None

    @property
    def message(self) -> Optional[str]:
        return self._payload.get('message') if self._payload else None

    @property
    def reason(self) -> Optional[str]:
        return self._payload.get('reason') if self._payload else None

    @property
    def details(self) -> Optional[RawStatusDetails]:
        return self._payload.get('details') if self._payload else None


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


class APIGoneError(APIClientError):
    pass


class StatusDecodeError(wire_errors.DecodeError):
    """ Raised when an error response's body is present, but cannot be decoded. """

    def __init__(self, message: str, *, stage: str, status: int) -> None:
        super().__init__(message, stage=stage)
        self.status = status


def status_error(payload: Optional[RawStatus], *, status: int) -> APIError:
    cls: Type[APIError] = (
        APIUnauthorizedError if status == 401 else
        APIForbiddenError if status == 403 else
        APINotFoundError if status == 404 else
        APIConflictError if status == 409 else
        APIGoneError if status == 410 else
        APIClientError if 400 <= status < 500 else
        APIServerError if 500 <= status < 600 else
        APIError
    )
    return cls(payload, status=status)


async def check_response(
        response: aiohttp.ClientResponse,
        *,
        codec: Optional[codecs.Codec] = None,
) -> None:
    """
    Check for specialised API errors, and raise with extended information.

    The error body is decoded with the codec of the response's content type,
    falling back to the codec of the request (the server usually replies
    in the requested encoding, but not always: e.g. for custom resources).
    """
    if 200 <= response.status < 300:
        return

    # Read the response's body before it is released.
    data: bytes
    try:
        data = await response.read()
    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError):
        data = b''
    finally:
        response.release()

    payload: Optional[RawStatus] = None
    if data:
        chosen = codecs.for_content_type(response.content_type) or codec or codecs.JSON
        try:
            status_obj = chosen.decode(data, models.Status)
        except wire_errors.DecodeError as e:
            raise StatusDecodeError(f"Cannot decode the error response of HTTP {response.status}: "
                                    f"{e}", stage=e.stage, status=response.status) from e

        # Better be safe: who knows which sensitive information can be dumped unless kind==Status.
        raw = status_obj.raw
        if isinstance(raw, collections.abc.Mapping) and raw.get('kind') == 'Status':
            payload = cast(RawStatus, raw)

    raise status_error(payload, status=response.status)
