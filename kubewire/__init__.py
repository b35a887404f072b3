"""
The main kubewire module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the library's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kubewire._cogs.configs.configuration import (
    ClientSettings,
    NetworkingSettings,
    WatchingSettings,
    EncodingSettings,
)
from kubewire._cogs.helpers.typedefs import (
    Logger,
)
from kubewire._cogs.helpers.versions import (
    version as __version__,
)
from kubewire._cogs.helpers.loggers import (
    configure,
    LogFormat,
    ObjectLogger,
)
from kubewire._cogs.structs.bodies import (
    RawEventType,
    RawEvent,
    RawBody,
    RawMeta,
    RawOwnerReference,
    RawList,
    RawListMeta,
    Labels,
    Annotations,
)
from kubewire._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from kubewire._cogs.structs.filters import (
    MetaFilterToken,
    build_label_selector,
    build_field_selector,
)
from kubewire._cogs.structs.models import (
    Model,
    ConfigMap,
    Secret,
    Namespace,
    Status,
    BUILTIN_MODELS,
)
from kubewire._cogs.structs.options import (
    RequestOptions,
)
from kubewire._cogs.structs.references import (
    ValidationError,
    Resource,
    ALL_NAMESPACES,
)
from kubewire._cogs.structs.registries import (
    RegistrationError,
    NotRegisteredError,
    ResourceRegistry,
    make_default_registry,
)
from kubewire._cogs.wire.codecs import (
    Codec,
    JSON,
    PROTOBUF,
    JSON_CONTENT_TYPE,
    PROTOBUF_CONTENT_TYPE,
)
from kubewire._cogs.wire.errors import (
    DecodeError,
    EncodeError,
)
from kubewire._cogs.wire.listing import (
    DeferredItem,
    DecodedList,
    decode_list,
    decode_event,
)
from kubewire._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APIGoneError,
    StatusDecodeError,
)
from kubewire._cogs.clients.watching import (
    EventType,
    WatchingError,
    StreamClosedError,
    StreamEndedError,
    WatchStream,
)
from kubewire._cogs.clients.piggybacking import (
    login,
    login_with_kubeconfig,
    login_with_service_account,
)
from kubewire._cogs.clients.client import (
    Client,
)

PRESENT = MetaFilterToken.PRESENT
ABSENT = MetaFilterToken.ABSENT

__all__ = [
    '__version__',
    'Client',
    'ClientSettings', 'NetworkingSettings', 'WatchingSettings', 'EncodingSettings',
    'ConnectionInfo', 'LoginError',
    'login', 'login_with_kubeconfig', 'login_with_service_account',
    'Model', 'ConfigMap', 'Secret', 'Namespace', 'Status', 'BUILTIN_MODELS',
    'Resource', 'ALL_NAMESPACES',
    'RequestOptions',
    'PRESENT', 'ABSENT',
    'build_label_selector', 'build_field_selector',
    'ResourceRegistry', 'make_default_registry',
    'Codec', 'JSON', 'PROTOBUF', 'JSON_CONTENT_TYPE', 'PROTOBUF_CONTENT_TYPE',
    'DeferredItem', 'DecodedList', 'decode_list', 'decode_event',
    'EventType', 'WatchStream',
    'RawEventType',
    'RawEvent',
    'RawBody',
    'RawMeta',
    'RawOwnerReference',
    'RawList',
    'RawListMeta',
    'Labels',
    'Annotations',
    'Logger',
    'ObjectLogger',
    'LogFormat',
    'configure',
    'ValidationError',
    'RegistrationError',
    'NotRegisteredError',
    'DecodeError',
    'EncodeError',
    'StatusDecodeError',
    'APIError',
    'APIClientError',
    'APIServerError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'APIGoneError',
    'WatchingError',
    'StreamClosedError',
    'StreamEndedError',
]
