"""
Resolvers for per-request lookups.

Destination, filename, sizes and key prefix are each looked up through a
``Resolver``: either a fixed value or a callable receiving the request and
the uploaded file. Callables may be plain functions or coroutines.
"""

import inspect
import secrets
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, TypeVar

T = TypeVar('T')


class Resolver(ABC, Generic[T]):
    """Looks up one value for a request."""

    @abstractmethod
    async def resolve(self, request: Any, file: Any) -> T:
        """
        Resolve the value for this request.

        Args:
            request: Request context (opaque to the engine)
            file: The uploaded file, or the descriptor of a stored file

        Returns:
            The resolved value
        """
        ...


class StaticResolver(Resolver[T]):
    """Always resolves to the same value."""

    def __init__(self, value: T):
        self.value = value

    async def resolve(self, request: Any, file: Any) -> T:
        return self.value

    def __repr__(self) -> str:
        return f"StaticResolver({self.value!r})"


class CallableResolver(Resolver[T]):
    """Delegates to a sync or async callable taking ``(request, file)``."""

    def __init__(self, func: Callable[[Any, Any], Any]):
        self.func = func

    async def resolve(self, request: Any, file: Any) -> T:
        result = self.func(request, file)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"CallableResolver({getattr(self.func, '__name__', self.func)!r})"


def random_filename(request: Any, file: Any) -> str:
    """Default filename: 32 random hex characters."""
    return secrets.token_hex(16)


DEFAULT_DESTINATION: Resolver[str] = StaticResolver("")
DEFAULT_FILENAME: Resolver[str] = CallableResolver(random_filename)
DEFAULT_SIZES: Resolver[Any] = StaticResolver(None)
DEFAULT_PREFIX: Resolver[Any] = StaticResolver(None)


def as_resolver(value: Any, default: Resolver) -> Resolver:
    """
    Turn an engine option into a resolver.

    Args:
        value: None, an existing Resolver, a callable, or a static value
        default: Resolver used when value is None

    Returns:
        Resolver for the option
    """
    if value is None:
        return default
    if isinstance(value, Resolver):
        return value
    if callable(value):
        return CallableResolver(value)
    return StaticResolver(value)
