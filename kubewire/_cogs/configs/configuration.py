"""
All configuration flags, options, settings to fine-tune the client.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

The settings are passed to the client at creation (see `Client`)
and are read on every request, so they can be adjusted between the calls.
All of them have reasonable defaults.
"""
import dataclasses
from typing import Optional


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the regular API requests (i.e. excluding the watch-streams).
    Measured in seconds for the whole request, including the body reading.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for the connection establishing, in seconds.
    If ``None``, only the total request timeout applies.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: Optional[int] = None
    """
    The maximum duration of one watch-stream, as requested from the server
    (sent as ``timeoutSeconds`` unless the request options specify one).
    If ``None``, then obey the server-side timeouts (they seem to be random).
    """

    client_timeout: Optional[float] = None
    """
    An HTTP/HTTPS session timeout to use in watch requests.
    If ``None``, a watch-stream can last as long as the server keeps it.
    """

    connect_timeout: Optional[float] = None
    """
    An HTTP/HTTPS connection timeout to use in watch requests.
    If ``None``, the networking connect/request timeouts are used.
    """

    max_frame_size: int = 64 * 1024 * 1024
    """
    The biggest watch-event frame accepted from the stream, in bytes.
    Bigger frames fail the stream with `DecodeError` instead of
    consuming the memory unboundedly.
    """


@dataclasses.dataclass
class EncodingSettings:

    prefer_protobuf: bool = True
    """
    Whether to talk to the API in the binary (protobuf) encoding for the kinds
    that have a protobuf schema. The kinds without a schema (e.g. custom
    resources) are always sent and received as JSON.
    """


@dataclasses.dataclass
class ClientSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    encoding: EncodingSettings = dataclasses.field(default_factory=EncodingSettings)
