"""
Explicit service registry threaded through composition functions.

Modules and host composition steps receive the registry as an argument and
add contract -> construction-rule bindings to it. Nothing here is global: the
registry becomes immutable once the application is built and a
`ServiceProvider` is created from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TypeVar

from ..errors import RegistryFrozenError, ServiceRegistrationError, require_argument
from ..observability.logging import get_logger

log = get_logger("registry")

T = TypeVar("T")


class Lifetime(Enum):
    SINGLETON = "singleton"
    SCOPED = "scoped"  # one instance per request / unit of work
    TRANSIENT = "transient"


@dataclass(frozen=True)
class ServiceDescriptor:
    contract: type
    lifetime: Lifetime
    implementation: type | None = None
    factory: Callable[[Any], Any] | None = None
    instance: Any = None

    @property
    def label(self) -> str:
        if self.implementation is not None:
            return self.implementation.__name__
        if self.factory is not None:
            return getattr(self.factory, "__name__", "factory")
        return type(self.instance).__name__


class ServiceRegistry:
    """
    Ordered list of service descriptors.

    - Re-registering a contract with a different lifetime is rejected immediately.
    - Re-registering with the same lifetime appends; the last registration wins
      when a single instance is resolved.
    """

    def __init__(self) -> None:
        self._descriptors: list[ServiceDescriptor] = []
        self._frozen = False

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self):
        return iter(list(self._descriptors))

    def __contains__(self, contract: object) -> bool:
        return any(d.contract is contract for d in self._descriptors)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def descriptors_for(self, contract: type) -> list[ServiceDescriptor]:
        return [d for d in self._descriptors if d.contract is contract]

    def add(self, descriptor: ServiceDescriptor) -> "ServiceRegistry":
        require_argument(descriptor, "descriptor")
        if self._frozen:
            raise RegistryFrozenError(
                f"cannot register {descriptor.contract.__name__}: the application has already been built"
            )
        for existing in self.descriptors_for(descriptor.contract):
            if existing.lifetime is not descriptor.lifetime:
                raise ServiceRegistrationError(
                    f"{descriptor.contract.__name__} is already registered as "
                    f"{existing.lifetime.value}; cannot register it again as {descriptor.lifetime.value}"
                )
        self._descriptors.append(descriptor)
        log.debug(
            "service_registered",
            contract=descriptor.contract.__name__,
            implementation=descriptor.label,
            lifetime=descriptor.lifetime.value,
        )
        return self

    def _add(
        self,
        lifetime: Lifetime,
        contract: type,
        implementation: type | Callable[[Any], Any] | None,
    ) -> "ServiceRegistry":
        require_argument(contract, "contract")
        impl = contract if implementation is None else implementation
        if isinstance(impl, type):
            if not issubclass(impl, contract):
                raise ServiceRegistrationError(
                    f"{impl.__name__} does not implement {contract.__name__}"
                )
            return self.add(ServiceDescriptor(contract=contract, lifetime=lifetime, implementation=impl))
        if callable(impl):
            return self.add(ServiceDescriptor(contract=contract, lifetime=lifetime, factory=impl))
        raise ServiceRegistrationError(
            f"implementation for {contract.__name__} must be a class or a factory callable"
        )

    def add_singleton(self, contract: type[T], implementation: type | Callable[[Any], T] | None = None) -> "ServiceRegistry":
        return self._add(Lifetime.SINGLETON, contract, implementation)

    def add_scoped(self, contract: type[T], implementation: type | Callable[[Any], T] | None = None) -> "ServiceRegistry":
        return self._add(Lifetime.SCOPED, contract, implementation)

    def add_transient(self, contract: type[T], implementation: type | Callable[[Any], T] | None = None) -> "ServiceRegistry":
        return self._add(Lifetime.TRANSIENT, contract, implementation)

    def add_instance(self, contract: type[T], instance: T) -> "ServiceRegistry":
        require_argument(contract, "contract")
        require_argument(instance, "instance")
        return self.add(ServiceDescriptor(contract=contract, lifetime=Lifetime.SINGLETON, instance=instance))

    def try_add_singleton(self, contract: type[T], implementation: type | Callable[[Any], T] | None = None) -> "ServiceRegistry":
        if contract in self:
            return self
        return self.add_singleton(contract, implementation)

    def try_add_instance(self, contract: type[T], instance: T) -> "ServiceRegistry":
        if contract in self:
            return self
        return self.add_instance(contract, instance)
