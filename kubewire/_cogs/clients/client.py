"""
The client: the CRUD, listing & watching surface of the API.

The client owns its registry of types, its settings, and its HTTP session.
It must be created inside a running event loop (as the HTTP session requires)
and closed when no longer needed, preferably via ``async with``::

    async with kubewire.Client(kubewire.login()) as client:
        cm = await client.create(kubewire.ConfigMap(metadata={'name': 'cm1'}))
        async with await client.watch(kubewire.ConfigMap) as stream:
            async for event_type, obj in stream:
                print(event_type, obj.name)

Every call is exactly one request (or one streaming response for watches).
There are no retries or caches: all failures are escalated to the caller
as they are (see `kubewire._cogs.clients.errors`).
"""
import dataclasses
import logging
from typing import Any, Iterable, Optional, Type

from kubewire._cogs.clients import api, auth, watching
from kubewire._cogs.configs import configuration
from kubewire._cogs.helpers import loggers
from kubewire._cogs.structs import credentials, models, options as options_, \
                                   references, registries
from kubewire._cogs.wire import codecs, listing

DEFAULT_NAMESPACE = 'default'


class Client:

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            *,
            settings: Optional[configuration.ClientSettings] = None,
            models: Iterable[Type[models.Model]] = (),
            registry: Optional[registries.ResourceRegistry] = None,
            logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__()
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.registry = registry if registry is not None else registries.make_default_registry()
        for model in models:
            self.registry.register_model(model)
        self.registry.freeze()
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._context = auth.APIContext(info)

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """ Close the HTTP session and all the watch-streams still open in it. """
        await self._context.close()

    @property
    def server(self) -> str:
        return self._context.server

    @property
    def default_namespace(self) -> Optional[str]:
        return self._context.default_namespace

    def get_codec(self, model: Type[models.Model]) -> codecs.Codec:
        return codecs.for_model(model, prefer_protobuf=self.settings.encoding.prefer_protobuf)

    def resolve_namespace(
            self,
            resource: references.Resource,
            namespace: references.Namespace = None,
            obj: Optional[models.Model] = None,
    ) -> Optional[str]:
        """
        Decide which namespace to use for a call, if any.

        For namespaced resources, the first one found is used: the explicitly
        requested namespace, the object's own namespace, the client's default
        namespace (e.g. from the kubeconfig's context), or ``"default"``.
        `ALL_NAMESPACES` means a cluster-wide call (for lists & watches).

        For cluster-scoped resources, nothing is implied. An explicitly
        requested namespace is passed through, so that the URL building
        fails with a `ValidationError` for it.
        """
        if namespace is references.ALL_NAMESPACES:
            return None
        elif not resource.namespaced:
            return namespace if isinstance(namespace, str) and namespace else None
        elif isinstance(namespace, str) and namespace:
            return namespace
        elif obj is not None and obj.namespace:
            return obj.namespace
        else:
            return self._context.default_namespace or DEFAULT_NAMESPACE

    async def create(
            self,
            obj: models.ModelT,
            *,
            namespace: Optional[str] = None,
            options: Optional[options_.RequestOptions] = None,
    ) -> models.ModelT:
        """ Create the object and return it as stored by the server. """
        if not obj.name and not obj.metadata.get('generateName'):
            raise references.ValidationError("Either a name or a generateName is required.")
        return await self._write('post', obj, namespace=namespace, options=options, named=False)

    async def update(
            self,
            obj: models.ModelT,
            *,
            namespace: Optional[str] = None,
            options: Optional[options_.RequestOptions] = None,
    ) -> models.ModelT:
        """ Replace the object (or its subresource) and return it as stored by the server. """
        if not obj.name:
            raise references.ValidationError("A name is required to update an object.")
        return await self._write('put', obj, namespace=namespace, options=options, named=True)

    async def delete(
            self,
            obj: models.Model,
            *,
            namespace: Optional[str] = None,
            options: Optional[options_.RequestOptions] = None,
    ) -> None:
        if not obj.name:
            raise references.ValidationError("A name is required to delete an object.")
        model = type(obj)
        resource = self.registry.lookup(model)
        resolved_namespace = self.resolve_namespace(resource, namespace, obj)
        url = resource.get_url(namespace=resolved_namespace, name=obj.name, options=options)
        await api.read(
            method='delete',
            url=url,
            context=self._context,
            settings=self.settings,
            codec=self.get_codec(model),
            logger=self._logger,
        )
        self._get_object_logger(obj, resolved_namespace).debug(f"Deleted {resource}.")

    async def get(
            self,
            model: Type[models.ModelT],
            name: str,
            *,
            namespace: references.Namespace = None,
            options: Optional[options_.RequestOptions] = None,
    ) -> models.ModelT:
        if not name:
            raise references.ValidationError("A name is required to get an object.")
        resource = self.registry.lookup(model)
        url = resource.get_url(
            namespace=self.resolve_namespace(resource, namespace),
            name=name,
            options=options,
        )
        return await api.call(
            method='get',
            url=url,
            model=model,
            context=self._context,
            settings=self.settings,
            codec=self.get_codec(model),
            logger=self._logger,
        )

    async def list(
            self,
            model: Type[models.Model],
            *,
            namespace: references.Namespace = None,
            options: Optional[options_.RequestOptions] = None,
    ) -> listing.DecodedList:
        """
        List the objects of a kind; the items are materialized by the caller.

        Use ``items.materialize(model)`` for all items at once, or
        ``item.materialize(model)`` for the items of interest only.
        """
        resource = self.registry.lookup(model)
        url = resource.get_url(
            namespace=self.resolve_namespace(resource, namespace),
            options=options,
        )
        data, content_type = await api.read(
            method='get',
            url=url,
            context=self._context,
            settings=self.settings,
            codec=self.get_codec(model),
            logger=self._logger,
        )
        return listing.decode_list(data, content_type)

    async def watch(
            self,
            model: Type[models.ModelT],
            *,
            namespace: references.Namespace = None,
            name: Optional[str] = None,
            options: Optional[options_.RequestOptions] = None,
    ) -> "watching.WatchStream[models.ModelT]":
        """
        Open a watch-stream of a kind (or of one object if the name is given).

        If the options have no timeout, the server-side timeout
        of the settings is used (if configured).
        """
        resource = self.registry.lookup(model)
        options = options if options is not None else options_.RequestOptions()
        if name:
            selectors = [options.field_selector, f'metadata.name={name}']
            field_selector = ','.join(selector for selector in selectors if selector)
            options = dataclasses.replace(options, field_selector=field_selector)
        if options.timeout is None and self.settings.watching.server_timeout is not None:
            options = options.with_timeout(self.settings.watching.server_timeout)

        resolved_namespace = self.resolve_namespace(resource, namespace)
        url = resource.get_url(namespace=resolved_namespace, options=options, watch=True)
        codec = self.get_codec(model)
        response = await api.stream(
            url=url,
            context=self._context,
            settings=self.settings,
            codec=codec,
            logger=self._logger,
        )
        where = f'in {resolved_namespace!r}' if resolved_namespace is not None else 'cluster-wide'
        try:
            return watching.WatchStream(
                response,
                model=model,
                content_type=response.headers.get('Content-Type') or codec.content_type,
                max_frame_size=self.settings.watching.max_frame_size,
                description=f'{resource} {where}',
                logger=self._logger,
            )
        except BaseException:
            response.close()
            raise

    async def _write(
            self,
            method: str,
            obj: models.ModelT,
            *,
            namespace: Optional[str],
            options: Optional[options_.RequestOptions],
            named: bool,
    ) -> models.ModelT:
        model = type(obj)
        resource = self.registry.lookup(model)
        resolved_namespace = self.resolve_namespace(resource, namespace, obj)
        url = resource.get_url(
            namespace=resolved_namespace,
            name=obj.name if named else None,
            options=options,
        )

        # The caller's object remains intact; only the sent body gets the namespace.
        body = model(obj.raw)
        if resolved_namespace is not None:
            body.get_metadata()['namespace'] = resolved_namespace

        codec = self.get_codec(model)
        result = await api.call(
            method=method,
            url=url,
            model=model,
            payload=codec.encode(body),
            context=self._context,
            settings=self.settings,
            codec=codec,
            logger=self._logger,
        )
        verb = 'Created' if method == 'post' else 'Updated'
        self._get_object_logger(result, resolved_namespace).debug(f"{verb} {resource}.")
        return result

    def _get_object_logger(
            self,
            obj: models.Model,
            namespace: Optional[str],
    ) -> loggers.ObjectLogger:
        raw = obj.raw if obj.namespace or namespace is None else dict(
            obj.raw, metadata=dict(obj.metadata, namespace=namespace))
        return loggers.ObjectLogger(raw, logger=self._logger)
