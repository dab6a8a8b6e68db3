"""Middleware chaining primitives."""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Iterator, Protocol

from .context import Context
from .exceptions import ContinuationError

Continuation = Callable[[], Awaitable[None]]


class Middleware(Protocol):
    async def __call__(self, context: Context, call_next: Continuation) -> None:  # pragma: no cover - protocol
        ...


MiddlewareCallable = Callable[[Context, Continuation], Awaitable[None]]

_PipelineKey = tuple[MiddlewareCallable, ...]


class MiddlewareChain:
    """Append-only, ordered sequence of middleware.

    ``dispatch`` runs the onion: code before ``call_next()`` executes in
    registration order, code after it in reverse order.
    """

    __slots__ = ("_middlewares", "_pipeline")

    def __init__(self, middlewares: Iterable[MiddlewareCallable] = ()) -> None:
        self._middlewares: list[MiddlewareCallable] = list(middlewares)
        self._pipeline: _MiddlewarePipeline | None = None

    def append(self, middleware: MiddlewareCallable) -> None:
        if not callable(middleware):
            raise TypeError(f"Middleware must be callable, got {middleware!r}")
        self._middlewares.append(middleware)
        self._pipeline = None

    def __len__(self) -> int:
        return len(self._middlewares)

    def __iter__(self) -> Iterator[MiddlewareCallable]:
        return iter(tuple(self._middlewares))

    def __getitem__(self, index: int) -> MiddlewareCallable:
        return self._middlewares[index]

    async def dispatch(self, context: Context) -> None:
        """Run every middleware against ``context``; failures propagate unchanged."""

        pipeline = self._pipeline
        if pipeline is None:
            pipeline = _MiddlewarePipeline(tuple(self._middlewares))
            self._pipeline = pipeline
        await pipeline.run(context)


class _MiddlewarePipeline:
    __slots__ = ("_middlewares",)

    def __init__(self, middlewares: _PipelineKey) -> None:
        self._middlewares = middlewares

    async def run(self, context: Context) -> None:
        await self._invoke(0, context)

    async def _invoke(self, index: int, context: Context) -> None:
        if index >= len(self._middlewares):
            return
        middleware = self._middlewares[index]
        await middleware(context, _NextHandler(self, index + 1, context, middleware))


class _NextHandler:
    """Single-use continuation handed to the middleware at ``index - 1``."""

    __slots__ = ("_called", "_context", "_index", "_owner", "_pipeline")

    def __init__(
        self,
        pipeline: _MiddlewarePipeline,
        index: int,
        context: Context,
        owner: MiddlewareCallable,
    ) -> None:
        self._pipeline = pipeline
        self._index = index
        self._context = context
        self._owner = owner
        self._called = False

    async def __call__(self) -> None:
        if self._called:
            name = getattr(self._owner, "__qualname__", repr(self._owner))
            raise ContinuationError(f"Middleware {name} called its continuation more than once")
        self._called = True
        await self._pipeline._invoke(self._index, self._context)


__all__ = ["Continuation", "Middleware", "MiddlewareCallable", "MiddlewareChain"]
