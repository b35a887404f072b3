"""
All the structures coming from/to the API, as JSON-shaped dicts.

Everything marked "raw" is plain unwrapped data as decoded from the API,
in either encoding: the protobuf messages are converted to the same dicts
as the JSON responses would contain (see `kubewire._cogs.wire.schemas`).

For strict type-checking, they are detailed to the per-field level
(`TypedDict` instead of just ``Mapping[Any, Any]``) as used by the client.
Arbitrary fields are allowed at runtime, but are not declared here.
"""
from typing import Any, List, Mapping

from typing_extensions import Literal, TypedDict

Labels = Mapping[str, str]
Annotations = Mapping[str, str]

# As sent by the servers; the newer servers can send other types too.
RawEventType = Literal['ADDED', 'MODIFIED', 'DELETED', 'ERROR', 'BOOKMARK']


class RawOwnerReference(TypedDict, total=False):
    apiVersion: str
    kind: str
    name: str
    uid: str
    controller: bool
    blockOwnerDeletion: bool


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    generateName: str
    namespace: str
    labels: Labels
    annotations: Annotations
    finalizers: List[str]
    ownerReferences: List[RawOwnerReference]
    resourceVersion: str
    generation: int
    deletionTimestamp: str
    creationTimestamp: str
    selfLink: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta


class RawListMeta(TypedDict, total=False):
    selfLink: str
    resourceVersion: str
    remainingItemCount: int
    # also "continue", which is a keyword and cannot be declared here.


class RawList(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawListMeta
    items: List[Any]


class RawEvent(TypedDict):
    type: RawEventType
    object: Any
