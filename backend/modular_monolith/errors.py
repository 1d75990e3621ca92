from __future__ import annotations


class InvalidArgumentError(ValueError):
    """Raised when a composition entry point receives a missing handle."""


def require_argument(value, name: str):
    # Call before any mutation.
    if value is None:
        raise InvalidArgumentError(f"{name} must not be None")
    return value


class ServiceRegistrationError(RuntimeError):
    """
    Registry misconfiguration detected at composition time
    (lifetime conflicts, unresolvable or captive dependencies).
    """


class ServiceResolutionError(LookupError):
    pass


class RegistryFrozenError(RuntimeError):
    """Raised when the registry is mutated after the application was built."""


class BrokenCircuitError(RuntimeError):
    def __init__(self, client_name: str, retry_after_s: float):
        super().__init__(
            f"circuit for http client '{client_name}' is open; retry after {retry_after_s:.2f}s"
        )
        self.client_name = client_name
        self.retry_after_s = retry_after_s
