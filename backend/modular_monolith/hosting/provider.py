from __future__ import annotations

import inspect
import threading
import typing
from typing import Any, TypeVar

from ..errors import ServiceRegistrationError, ServiceResolutionError, require_argument
from ..observability.logging import get_logger
from .registry import Lifetime, ServiceDescriptor, ServiceRegistry

log = get_logger("provider")

T = TypeVar("T")


def _constructor_dependencies(impl: type) -> list[tuple[str, Any, bool]]:
    """
    (parameter name, annotated type, has default) for each injectable
    `__init__` parameter of `impl`.
    """
    if impl.__init__ is object.__init__:
        return []
    try:
        hints = typing.get_type_hints(impl.__init__)
    except NameError as e:
        raise ServiceRegistrationError(
            f"cannot read constructor annotations of {impl.__name__}: {e}"
        ) from e

    out: list[tuple[str, Any, bool]] = []
    for name, param in inspect.signature(impl).parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        out.append((name, hints.get(name), param.default is not inspect.Parameter.empty))
    return out


def validate_registry(registry: ServiceRegistry) -> None:
    """
    Build-time graph validation:
    - every constructor dependency is registered or has a default
    - singletons never capture scoped services
    """
    problems: list[str] = []
    for d in registry:
        if d.implementation is None:
            continue
        for name, dep, has_default in _constructor_dependencies(d.implementation):
            dep_descriptors = registry.descriptors_for(dep) if isinstance(dep, type) else []
            if not dep_descriptors:
                if not has_default:
                    problems.append(
                        f"{d.implementation.__name__}.{name}: no registration for "
                        f"{getattr(dep, '__name__', dep)!s}"
                    )
                continue
            if d.lifetime is Lifetime.SINGLETON and dep_descriptors[-1].lifetime is Lifetime.SCOPED:
                problems.append(
                    f"{d.implementation.__name__} is a singleton but depends on scoped {dep.__name__}"
                )
    if problems:
        raise ServiceRegistrationError("invalid service graph: " + "; ".join(problems))


class _Resolver:
    _root: "ServiceProvider"

    def __init__(self) -> None:
        self._created: list[Any] = []
        self._closed = False

    # Implemented by the root provider and by scopes.
    def _resolve_scoped(self, d: ServiceDescriptor, chain: tuple[type, ...]) -> Any:
        raise NotImplementedError

    def get_service(self, contract: type[T]) -> T | None:
        require_argument(contract, "contract")
        descriptors = self._root._registry.descriptors_for(contract)
        if not descriptors:
            return None
        return self._resolve(descriptors[-1], ())

    def get_required_service(self, contract: type[T]) -> T:
        svc = self.get_service(contract)
        if svc is None:
            raise ServiceResolutionError(f"no service registered for {contract.__name__}")
        return svc

    def get_services(self, contract: type[T]) -> list[T]:
        require_argument(contract, "contract")
        return [self._resolve(d, ()) for d in self._root._registry.descriptors_for(contract)]

    def _resolve(self, d: ServiceDescriptor, chain: tuple[type, ...]) -> Any:
        if self._closed:
            raise ServiceResolutionError("cannot resolve services from a closed scope")
        if d.contract in chain:
            path = " -> ".join([c.__name__ for c in (*chain, d.contract)])
            raise ServiceResolutionError(f"circular dependency: {path}")
        if d.lifetime is Lifetime.SINGLETON:
            return self._root._resolve_singleton(d, chain)
        if d.lifetime is Lifetime.SCOPED:
            return self._resolve_scoped(d, chain)
        return self._create(d, chain)

    def _create(self, d: ServiceDescriptor, chain: tuple[type, ...]) -> Any:
        if d.instance is not None:
            return d.instance
        chain = (*chain, d.contract)
        if d.factory is not None:
            obj = d.factory(self)
        else:
            impl = d.implementation
            assert impl is not None
            kwargs: dict[str, Any] = {}
            for name, dep, has_default in _constructor_dependencies(impl):
                dep_descriptors = self._root._registry.descriptors_for(dep) if isinstance(dep, type) else []
                if dep_descriptors:
                    kwargs[name] = self._resolve(dep_descriptors[-1], chain)
                elif not has_default:
                    raise ServiceResolutionError(
                        f"cannot construct {impl.__name__}: no registration for parameter '{name}'"
                    )
            obj = impl(**kwargs)
        # The root lives for the whole process: it only owns its singletons.
        if self is not self._root or d.lifetime is Lifetime.SINGLETON:
            self._created.append(obj)
        return obj

    def _close_created(self) -> None:
        for obj in reversed(self._created):
            close = getattr(obj, "close", None)
            if not callable(close):
                continue
            try:
                close()
            except Exception:
                log.exception("service_close_failed", service=type(obj).__name__)
        self._created.clear()


class ServiceScope(_Resolver):
    """
    Unit of work. Scoped services are created once per scope; closing the
    scope closes what it created.
    """

    def __init__(self, root: "ServiceProvider"):
        super().__init__()
        self._root = root
        self._scoped: dict[int, Any] = {}
        self._lock = threading.RLock()

    def _resolve_scoped(self, d: ServiceDescriptor, chain: tuple[type, ...]) -> Any:
        key = id(d)
        with self._lock:
            if key not in self._scoped:
                self._scoped[key] = self._create(d, chain)
            return self._scoped[key]

    def close(self) -> None:
        if self._closed:
            return
        self._close_created()
        self._scoped.clear()
        self._closed = True

    def __enter__(self) -> "ServiceScope":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ServiceProvider(_Resolver):
    """Root resolver built from a frozen registry."""

    def __init__(self, registry: ServiceRegistry):
        super().__init__()
        require_argument(registry, "registry")
        self._root = self
        self._registry = registry
        self._singletons: dict[int, Any] = {}
        self._lock = threading.RLock()

    def _resolve_scoped(self, d: ServiceDescriptor, chain: tuple[type, ...]) -> Any:
        raise ServiceResolutionError(
            f"cannot resolve scoped service {d.contract.__name__} from the root provider; "
            "resolve it from a scope created with create_scope()"
        )

    def _resolve_singleton(self, d: ServiceDescriptor, chain: tuple[type, ...]) -> Any:
        key = id(d)
        with self._lock:
            if key not in self._singletons:
                # Singletons are always built by the root so they never capture scoped state.
                self._singletons[key] = self._create(d, chain)
            return self._singletons[key]

    def create_scope(self) -> ServiceScope:
        if self._closed:
            raise ServiceResolutionError("provider has been shut down")
        return ServiceScope(self)

    def close(self) -> None:
        if self._closed:
            return
        with self._lock:
            self._close_created()
            self._singletons.clear()
            self._closed = True
