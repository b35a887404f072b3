"""
Typed objects: one class per kind, each backed by its raw JSON-shaped body.

Every model class carries its own REST coordinates (`Model.resource`)
and the name of its protobuf message (`Model.schema`), so that neither
the registry nor the codecs have to guess the kind by the object's contents.
The kinds without a protobuf schema (e.g. custom resources) are JSON-only::

    class KopfExample(kubewire.Model):
        resource = kubewire.Resource('kopf.dev', 'v1', 'kopfexamples',
                                     kind='KopfExample', namespaced=True)

The body is stored as is, as a dict (see `kubewire._cogs.structs.bodies`):
all fields are available to the callers, even those unknown to the client.
"""
import copy
from typing import Any, ClassVar, Dict, Iterator, Mapping, Optional, Type, TypeVar

from kubewire._cogs.structs import bodies, references
from kubewire._cogs.wire import schemas

ModelT = TypeVar('ModelT', bound='Model')


class Model(Mapping[str, Any]):
    resource: ClassVar[Optional[references.Resource]] = None
    schema: ClassVar[Optional[str]] = None
    api_version: ClassVar[Optional[str]] = None
    kind: ClassVar[Optional[str]] = None

    raw: Dict[str, Any]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.resource is not None and 'api_version' not in cls.__dict__:
            cls.api_version = cls.resource.api_version
        if cls.resource is not None and 'kind' not in cls.__dict__:
            cls.kind = cls.resource.kind

    def __init__(self, raw: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        """
        Create a new object from a body and/or individual fields.

        The ``apiVersion`` & ``kind`` fields are filled from the class
        unless explicitly given. The data are deep-copied. For the kinds with
        a protobuf schema, the nulls and the empty collections are dropped
        (see `kubewire._cogs.wire.schemas.canonicalize`).
        """
        super().__init__()
        body: Dict[str, Any] = copy.deepcopy(dict(raw or {}))
        body.update(copy.deepcopy(fields))
        if self.schema is not None:
            body = schemas.canonicalize(self.schema, body)
        if self.api_version is not None:
            body.setdefault('apiVersion', self.api_version)
        if self.kind is not None:
            body.setdefault('kind', self.kind)
        self.raw = body

    @classmethod
    def from_raw(cls: Type[ModelT], raw: Dict[str, Any]) -> ModelT:
        """ Adopt an already decoded body as is: with no copying, no defaults. """
        obj = cls.__new__(cls)
        obj.raw = raw
        return obj

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.raw!r})'

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Model):
            return type(self) is type(other) and self.raw == other.raw
        else:
            return NotImplemented

    def __getitem__(self, key: str) -> Any:
        return self.raw[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.raw)

    def __len__(self) -> int:
        return len(self.raw)

    def get_metadata(self) -> bodies.RawMeta:
        metadata: bodies.RawMeta = self.raw.setdefault('metadata', {})
        return metadata

    @property
    def metadata(self) -> bodies.RawMeta:
        return self.get_metadata()

    @property
    def name(self) -> Optional[str]:
        return self.get_metadata().get('name')

    @property
    def namespace(self) -> Optional[str]:
        return self.get_metadata().get('namespace')

    @property
    def resource_version(self) -> Optional[str]:
        return self.get_metadata().get('resourceVersion')

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


class ConfigMap(Model):
    resource = references.Resource(
        '', 'v1', 'configmaps',
        kind='ConfigMap', singular='configmap', shortcuts=frozenset({'cm'}), namespaced=True,
    )
    schema = 'k8s.io.api.core.v1.ConfigMap'

    @property
    def data(self) -> Dict[str, str]:
        data: Dict[str, str] = self.raw.setdefault('data', {})
        return data


class Secret(Model):
    resource = references.Resource(
        '', 'v1', 'secrets',
        kind='Secret', singular='secret', namespaced=True,
    )
    schema = 'k8s.io.api.core.v1.Secret'

    @property
    def data(self) -> Dict[str, str]:  # base64-encoded values, as in JSON.
        data: Dict[str, str] = self.raw.setdefault('data', {})
        return data


class Namespace(Model):
    resource = references.Resource(
        '', 'v1', 'namespaces',
        kind='Namespace', singular='namespace', shortcuts=frozenset({'ns'}), namespaced=False,
    )
    schema = 'k8s.io.api.core.v1.Namespace'


class Status(Model):
    """ The API's response status, e.g. with the error details. Not an addressable kind. """
    api_version = 'v1'
    kind = 'Status'
    schema = 'k8s.io.apimachinery.pkg.apis.meta.v1.Status'


BUILTIN_MODELS = (ConfigMap, Secret, Namespace)
