"""
The HTTP requests to the API: one request & one response per call.

There are no retries here: a failed request is escalated to the caller
as is, and it is the caller's responsibility to retry if needed.
The errors of the API are converted to our own exceptions (see `errors`);
the networking errors and timeouts of ``aiohttp`` are escalated as is.
"""
from typing import Mapping, Optional, Tuple, Type

import aiohttp

from kubewire._cogs.clients import auth, errors
from kubewire._cogs.configs import configuration
from kubewire._cogs.helpers import typedefs
from kubewire._cogs.structs import models
from kubewire._cogs.wire import codecs


async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        codec: codecs.Codec,
        payload: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Send a request, check the response's status, and return the open response.

    The response's body is not read (except for the error responses),
    so that it can be either read fully or streamed by the caller.
    """
    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')

    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    logger.debug(f"{method.upper()} {url}")
    response = await context.session.request(
        method=method,
        url=url,
        data=payload,
        headers=dict(codec.headers, **(headers or {})),
        timeout=timeout,
    )

    # Keep track of responses which are using this context.
    context.add_response(response)

    await errors.check_response(response, codec=codec)
    return response


async def read(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        codec: codecs.Codec,
        payload: Optional[bytes] = None,
        logger: typedefs.Logger,
) -> Tuple[bytes, str]:
    """ Make a request and read the response's body fully with its content type. """
    response = await request(
        method=method,
        url=url,
        payload=payload,
        context=context,
        settings=settings,
        codec=codec,
        logger=logger,
    )
    async with response:
        data = await response.read()
        return data, response.headers.get('Content-Type') or codec.content_type


async def call(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        model: Type[models.ModelT],
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        codec: codecs.Codec,
        payload: Optional[bytes] = None,
        logger: typedefs.Logger,
) -> models.ModelT:
    """ Make a request and decode the response's body into a model. """
    data, content_type = await read(
        method=method,
        url=url,
        payload=payload,
        context=context,
        settings=settings,
        codec=codec,
        logger=logger,
    )
    reply_codec = codecs.for_content_type(content_type) or codec
    return reply_codec.decode(data, model)


async def stream(
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        codec: codecs.Codec,
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Open a streaming response (a watch-stream); the caller must close it.
    """
    connect_timeout = (
        settings.watching.connect_timeout if settings.watching.connect_timeout is not None else
        settings.networking.connect_timeout if settings.networking.connect_timeout is not None else
        settings.networking.request_timeout
    )
    return await request(
        method='get',
        url=url,
        context=context,
        settings=settings,
        codec=codec,
        logger=logger,
        timeout=aiohttp.ClientTimeout(
            total=settings.watching.client_timeout,
            sock_connect=connect_timeout,
        ),
    )
