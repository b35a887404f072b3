import asyncio
import functools
import json
from typing import Any, Callable, Dict, List, Optional, Type

import click
import yaml

from kubewire._cogs.clients import client, errors, piggybacking, watching
from kubewire._cogs.configs import configuration
from kubewire._cogs.helpers import loggers, versions
from kubewire._cogs.structs import credentials, models, options, references, registries
from kubewire._cogs.wire import errors as wire_errors


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


class KindParamType(click.ParamType):
    """ A kind by any of its names: plural, singular, kind, or a shortcut. """
    name = 'kind'

    def convert(self, value: Any, param: Any, ctx: Any) -> Type[models.Model]:
        if isinstance(value, type) and issubclass(value, models.Model):
            return value
        try:
            model: Type[models.Model] = registries.make_default_registry().find(str(value))
        except registries.NotRegisteredError as e:
            self.fail(str(e), param, ctx)
        return model


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def connection_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator for the login & encoding options of all commands. """
    fn = click.option('--protobuf/--json', 'protobuf', default=True)(fn)
    fn = click.option('--context', 'context', type=str, default=None)(fn)
    return fn


@click.version_option(prog_name='kubewire', version=versions.version or 'unknown')
@click.group(name='kubewire', context_settings=dict(
    auto_envvar_prefix='KUBEWIRE',
))
def main() -> None:
    pass


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str, default=None)
@click.option('-o', '--output', type=click.Choice(['json', 'yaml']), default='yaml')
@click.argument('kind', type=KindParamType())
@click.argument('name', type=str)
def get(
        kind: Type[models.Model],
        name: str,
        namespace: Optional[str],
        output: str,
        context: Optional[str],
        protobuf: bool,
) -> None:
    """ Get one object by its name. """
    body = run(fetch_object(kind, name, namespace=namespace, context=context, protobuf=protobuf))
    click.echo(render(body, output=output))


@main.command(name='list')
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str, default=None)
@click.option('-A', '--all-namespaces', 'clusterwide', is_flag=True)
@click.option('-l', '--selector', type=str, default=None)
@click.option('-o', '--output', type=click.Choice(['json', 'yaml']), default='yaml')
@click.argument('kind', type=KindParamType())
def list_(
        kind: Type[models.Model],
        namespace: Optional[str],
        clusterwide: bool,
        selector: Optional[str],
        output: str,
        context: Optional[str],
        protobuf: bool,
) -> None:
    """ List the objects of a kind. """
    ns = resolve_namespace_option(namespace, clusterwide)
    bodies = run(fetch_list(kind, namespace=ns, selector=selector,
                            context=context, protobuf=protobuf))
    click.echo(render({'items': bodies}, output=output))


@main.command()
@logging_options
@connection_options
@click.option('-n', '--namespace', type=str, default=None)
@click.option('-A', '--all-namespaces', 'clusterwide', is_flag=True)
@click.option('-l', '--selector', type=str, default=None)
@click.option('--resource-version', type=str, default=None)
@click.option('--timeout', type=int, default=None)
@click.argument('kind', type=KindParamType())
def watch(
        kind: Type[models.Model],
        namespace: Optional[str],
        clusterwide: bool,
        selector: Optional[str],
        resource_version: Optional[str],
        timeout: Optional[int],
        context: Optional[str],
        protobuf: bool,
) -> None:
    """ Watch the objects of a kind and print one line per event. """
    ns = resolve_namespace_option(namespace, clusterwide)
    run(stream_events(kind, namespace=ns, selector=selector,
                      resource_version=resource_version, timeout=timeout,
                      context=context, protobuf=protobuf, echo=click.echo))


def resolve_namespace_option(namespace: Optional[str], clusterwide: bool) -> references.Namespace:
    if namespace and clusterwide:
        raise click.UsageError("Either --namespace or --all-namespaces can be used, not both.")
    return references.ALL_NAMESPACES if clusterwide else namespace


def run(coro: Any) -> Any:
    """ Run a coroutine to its end, and report the API errors as the CLI errors. """
    try:
        return asyncio.run(coro)
    except credentials.LoginError as e:
        raise click.ClickException(f"Cannot log in: {e}")
    except errors.APIError as e:
        raise click.ClickException(f"The API failed with HTTP {e.status}: {e}")
    except (wire_errors.DecodeError, wire_errors.EncodeError) as e:
        raise click.ClickException(f"Cannot decode the API's response: {e}")
    except (references.ValidationError, registries.NotRegisteredError) as e:
        raise click.ClickException(str(e))


def render(body: Dict[str, Any], *, output: str) -> str:
    if output == 'json':
        return json.dumps(body, indent=2, sort_keys=False)
    else:
        return yaml.safe_dump(body, sort_keys=False, default_flow_style=False).rstrip('\n')


def make_client(*, context: Optional[str], protobuf: bool) -> client.Client:
    settings = configuration.ClientSettings()
    settings.encoding.prefer_protobuf = protobuf
    return client.Client(piggybacking.login(context=context), settings=settings)


async def fetch_object(
        model: Type[models.Model],
        name: str,
        *,
        namespace: Optional[str],
        context: Optional[str],
        protobuf: bool,
) -> Dict[str, Any]:
    async with make_client(context=context, protobuf=protobuf) as api_client:
        obj = await api_client.get(model, name, namespace=namespace)
        return obj.to_dict()


async def fetch_list(
        model: Type[models.Model],
        *,
        namespace: references.Namespace,
        selector: Optional[str],
        context: Optional[str],
        protobuf: bool,
) -> List[Dict[str, Any]]:
    request_options = options.RequestOptions(label_selector=selector)
    async with make_client(context=context, protobuf=protobuf) as api_client:
        items = await api_client.list(model, namespace=namespace, options=request_options)
        return [obj.to_dict() for obj in items.materialize(model)]


async def stream_events(
        model: Type[models.Model],
        *,
        namespace: references.Namespace,
        selector: Optional[str],
        resource_version: Optional[str],
        timeout: Optional[int],
        context: Optional[str],
        protobuf: bool,
        echo: Callable[[str], None],
) -> None:
    request_options = options.RequestOptions(
        resource_version=resource_version,
        timeout=timeout,
        label_selector=selector,
    )
    async with make_client(context=context, protobuf=protobuf) as api_client:
        stream = await api_client.watch(model, namespace=namespace, options=request_options)
        async with stream:
            async for event_type, obj in stream:
                echo(format_event(event_type, obj))


def format_event(event_type: watching.EventType, obj: models.Model) -> str:
    where = f'{obj.namespace}/{obj.name}' if obj.namespace else f'{obj.name}'
    return f'{event_type.value:<8} {obj.kind or type(obj).__name__} {where} {obj.resource_version}'

