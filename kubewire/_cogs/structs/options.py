"""
Request options: the query parameters & the subresource of an API call.

The options are immutable. They are built either directly with the keyword
arguments, or step by step with the fluent builder methods, each returning
a new instance::

    options = RequestOptions().with_labels({'app': 'web'}).with_timeout(60)

The order of the query parameters on the wire is fixed by the struct,
not by the order of the builder calls: ``resourceVersion``, ``timeoutSeconds``,
``labelSelector``, ``fieldSelector``, then the custom parameters in the order
they were added.
"""
import dataclasses
from typing import Iterable, List, Optional, Tuple

from kubewire._cogs.structs import filters, references

# The parameters managed by the struct's own fields. Also `watch`, which is managed by the URLs.
RESERVED_PARAMS = frozenset({
    'resourceVersion', 'timeoutSeconds', 'labelSelector', 'fieldSelector', 'watch',
})


@dataclasses.dataclass(frozen=True)
class RequestOptions:
    resource_version: Optional[str] = None
    timeout: Optional[int] = None  # seconds, as sent to the server.
    label_selector: Optional[str] = None
    field_selector: Optional[str] = None
    subresource: Optional[str] = None
    params: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self) -> None:

        # Since the class is frozen & read-only, post-creation field adjustment is done via a hack.
        params = tuple((str(key), str(value)) for key, value in self.params)
        object.__setattr__(self, 'params', params)

        if self.timeout is not None and self.timeout < 0:
            raise references.ValidationError(f"Timeouts cannot be negative: {self.timeout!r}")
        if self.subresource is not None and (not self.subresource or '/' in self.subresource):
            raise references.ValidationError(f"Malformed subresource: {self.subresource!r}")
        for key, _ in self.params:
            if key in RESERVED_PARAMS:
                raise references.ValidationError(f"Reserved query parameter: {key!r}")

    def with_resource_version(self, resource_version: str) -> "RequestOptions":
        return dataclasses.replace(self, resource_version=resource_version)

    def with_timeout(self, seconds: float) -> "RequestOptions":
        return dataclasses.replace(self, timeout=int(seconds))

    def with_labels(self, labels: filters.LabelSelector) -> "RequestOptions":
        return dataclasses.replace(self, label_selector=filters.build_label_selector(labels))

    def with_fields(self, fields: filters.FieldSelector) -> "RequestOptions":
        return dataclasses.replace(self, field_selector=filters.build_field_selector(fields))

    def with_subresource(self, subresource: str) -> "RequestOptions":
        return dataclasses.replace(self, subresource=subresource)

    def with_param(self, key: str, value: str) -> "RequestOptions":
        return self.with_params([(key, value)])

    def with_params(self, params: Iterable[Tuple[str, str]]) -> "RequestOptions":
        return dataclasses.replace(self, params=self.params + tuple(params))

    def query_params(self) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if self.resource_version is not None:
            params.append(('resourceVersion', self.resource_version))
        if self.timeout is not None:
            params.append(('timeoutSeconds', str(self.timeout)))
        if self.label_selector:
            params.append(('labelSelector', self.label_selector))
        if self.field_selector:
            params.append(('fieldSelector', self.field_selector))
        params.extend(self.params)
        return params
