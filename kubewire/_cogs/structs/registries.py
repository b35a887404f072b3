"""
A registry of the known object types and their REST coordinates.

The registry is owned by a client: it is populated when the client is created
and is frozen right after that, so that it remains read-only while in use
by any number of concurrent API calls (no locking is needed for that).

Registering the same identity twice is a programmer's error, not a runtime
condition: it raises `RegistrationError`, which deliberately does not inherit
from `Exception`, so that the usual ``except Exception:`` blocks do not hide it.
Looking up an unknown identity is a regular per-call `NotRegisteredError`.
"""
from typing import Any, Dict, Iterable, Iterator, Optional, Type

from kubewire._cogs.structs import models, references


class RegistrationError(BaseException):
    """ Raised on duplicate registrations or on registrations into a frozen registry. """


class NotRegisteredError(LookupError):
    """ Raised when a type is not registered but is used in the API calls. """


class ResourceRegistry:
    """
    A mapping of type identities (usually, the model classes) to the resources.

    Two distinct identities can point to the same coordinates:
    e.g. a typed model and a loosely typed JSON-only model of the same kind.
    """

    def __init__(self, types: Iterable[Type[models.Model]] = ()) -> None:
        super().__init__()
        self._resources: Dict[Any, references.Resource] = {}
        self._frozen = False
        for model in types:
            self.register_model(model)

    def __repr__(self) -> str:
        frozen = ' (frozen)' if self._frozen else ''
        return f'<{self.__class__.__name__}{frozen}: {list(self._resources.values())!r}>'

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._resources)

    def __contains__(self, identity: object) -> bool:
        return identity in self._resources

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, identity: Any, resource: references.Resource) -> None:
        if self._frozen:
            raise RegistrationError(f"The registry is frozen, cannot register {identity!r}.")
        if identity in self._resources:
            known = self._resources[identity]
            raise RegistrationError(f"{identity!r} is already registered as {known!r}.")
        self._resources[identity] = resource

    def register_model(self, model: Type[models.Model]) -> None:
        if model.resource is None:
            raise RegistrationError(f"{model!r} has no resource to be registered with.")
        self.register(model, model.resource)

    def lookup(self, identity: Any) -> references.Resource:
        if isinstance(identity, models.Model):
            identity = type(identity)
        try:
            return self._resources[identity]
        except KeyError:
            raise NotRegisteredError(f"{identity!r} is not registered.") from None

    def find(self, name: str) -> Any:
        """
        Find a registered identity by any of its resource's names.

        The names are matched case-insensitively: the plural, the singular,
        the kind, or any of the shortcuts; e.g. ``"configmaps"`` or ``"cm"``.
        """
        found: Optional[Any] = None
        for identity, resource in self._resources.items():
            if name.lower() in resource.names:
                if found is not None:
                    raise NotRegisteredError(f"Ambiguous resource name: {name!r}")
                found = identity
        if found is None:
            raise NotRegisteredError(f"No resource is registered as {name!r}.")
        return found


def make_default_registry() -> ResourceRegistry:
    return ResourceRegistry(models.BUILTIN_MODELS)
