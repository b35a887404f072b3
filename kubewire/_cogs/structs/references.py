import dataclasses
import enum
import urllib.parse
from typing import TYPE_CHECKING, FrozenSet, Iterator, List, Optional, Tuple, Union

if TYPE_CHECKING:
    from kubewire._cogs.structs import options as options_


class ValidationError(ValueError):
    """
    Raised when a request cannot be addressed as requested.

    E.g. a namespace for a cluster-scoped kind, a subresource without a name,
    a named namespaced object without a namespace, malformed request options.
    It is raised before any network activity happens.
    """


class Marker(enum.Enum):
    """
    A special marker for the namespace-independent calls of namespaced kinds.
    """
    ALL_NAMESPACES = enum.auto()


# An explicit marker to list or watch the namespaced objects in all namespaces at once.
ALL_NAMESPACES = Marker.ALL_NAMESPACES

# A namespace reference as accepted from the callers. `None` means "default as usual".
Namespace = Union[None, str, Marker]


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A reference to a very specific built-in or custom resource kind.

    It is used to form the API URLs. Generally, the API only needs
    an API group, an API version, and a plural name of the resource.
    All other names are remembered for lookups by name (e.g. in CLI),
    for logging, and for informational purposes.
    """

    group: str
    """
    The resource's API group; e.g. ``"apps"``, ``"batch"``, ``"example.com"``.
    For Core v1 API resources, an empty string: ``""``.
    """

    version: str
    """
    The resource's API version; e.g. ``"v1"``, ``"v1beta1"``, etc.
    """

    plural: str
    """
    The resource's plural name; e.g. ``"pods"``, ``"configmaps"``.
    It is used as an API endpoint, together with API group & version.
    """

    kind: Optional[str] = None
    """
    The resource's kind (as in YAML files); e.g. ``"Pod"``, ``"ConfigMap"``.
    """

    singular: Optional[str] = None
    """
    The resource's singular name; e.g. ``"pod"``, ``"configmap"``.
    """

    shortcuts: FrozenSet[str] = frozenset()
    """
    The resource's short names; e.g. ``{"po"}``, ``{"cm"}``.
    """

    namespaced: Optional[bool] = None
    """
    Whether the resource is namespaced (``True``) or cluster-scoped (``False``).
    """

    def __hash__(self) -> int:
        return hash((self.group, self.version, self.plural))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Resource):
            self_tuple = (self.group, self.version, self.plural)
            other_tuple = (other.group, other.version, other.plural)
            return self_tuple == other_tuple
        else:
            return NotImplemented

    def __repr__(self) -> str:
        return f'{self.plural}.{self.version}.{self.group}'.strip('.')

    def __iter__(self) -> Iterator[str]:
        return iter((self.group, self.version, self.plural))

    @property
    def api_version(self) -> str:
        """ The ``apiVersion`` field of the objects: e.g. ``"v1"`` or ``"apps/v1"``. """
        return f'{self.group}/{self.version}' if self.group else self.version

    @property
    def names(self) -> FrozenSet[str]:
        """ All the names by which the resource can be referred to, in lowercase. """
        names = {self.plural, self.singular, self.kind, *self.shortcuts}
        return frozenset(name.lower() for name in names if name)

    def get_url(
            self,
            *,
            server: Optional[str] = None,
            namespace: Optional[str] = None,
            name: Optional[str] = None,
            options: Optional["options_.RequestOptions"] = None,
            watch: bool = False,
    ) -> str:
        """
        Build a URL to be used with the API.

        If the namespace is not set, a cluster-wide URL is returned.
        For cluster-scoped resources, a namespace is an error.

        If the name is not set, the URL for the resource list is returned.
        Otherwise (if set), the URL for the individual resource is returned.

        If the options have a subresource, that subresource's URL is returned,
        regardless of whether such a subresource is known or not.

        The options go to the query parameters in a fixed order
        (``?resourceVersion=…&timeoutSeconds=…&labelSelector=…&…``).
        For watch-streams, ``watch=true`` is always the last one.
        """
        namespace = namespace or None  # empty strings are the same as no namespace.
        name = name or None
        subresource = options.subresource if options is not None else None

        if not self.namespaced and namespace is not None:
            raise ValidationError(f"The type is not namespaced: {self}")
        if subresource is not None and name is None:
            raise ValidationError("Subresources can be used only with specific objects by name.")
        if self.namespaced and namespace is None and name is not None:
            raise ValidationError("Specific namespaces are required for namespaced objects.")

        parts: List[Optional[str]] = [
            '/api' if not self.group else '/apis',
            self.group,
            self.version,
            'namespaces' if namespace is not None else None,
            namespace,
            self.plural,
            name,
            subresource,
        ]

        params: List[Tuple[str, str]] = []
        if options is not None:
            params.extend(options.query_params())
        if watch:
            params.append(('watch', 'true'))

        query = urllib.parse.urlencode(params, encoding='utf-8') if params else ''
        path = '/'.join([part for part in parts if part])
        url = path + ('?' if query else '') + query
        return url if server is None else server.rstrip('/') + '/' + url.lstrip('/')
