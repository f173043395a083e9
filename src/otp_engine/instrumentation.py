"""Hooks wrapped around ephemeral store calls.

A hook is an async middleware ``(call, proceed)``: it can time, trace or log
a store call and must await ``proceed()`` to run it. Hooks only ever see a
:class:`StoreCall` (operation and key family), never the full key, since keys
such as ``totp:used:{subject}:{code}`` embed codes.

Usage:
    ```python
    registry = HookRegistry()
    registry.register(SlowCallLogger(threshold_seconds=0.05))
    set_hook_registry(registry)
    ```
"""

from __future__ import annotations

import fnmatch
import logging
import time
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("otp_engine.instrumentation")


@dataclass(frozen=True)
class StoreCall:
    """One store operation as seen by hooks.

    Attributes:
        operation: Store method, e.g. ``get`` or ``increment``.
        key_family: First key segment: ``code``, ``gen``, ``verify`` or ``totp``.
    """

    operation: str
    key_family: str

    @classmethod
    def for_key(cls, operation: str, key: str) -> StoreCall:
        return cls(operation=operation, key_family=key.split(":", 1)[0])

    @property
    def name(self) -> str:
        return f"otp.store.{self.operation}"


@runtime_checkable
class StoreHook(Protocol):
    async def __call__(
        self,
        call: StoreCall,
        proceed: Callable[[], Awaitable[Any]],
    ) -> Any: ...


class HookRegistration:
    """A registered hook and the calls it applies to."""

    def __init__(
        self,
        hook: StoreHook,
        *,
        priority: int = 0,
        operations: list[str] | None = None,
        key_families: list[str] | None = None,
    ) -> None:
        self.hook = hook
        self.priority = priority
        self.operations = operations or []
        self.key_families = frozenset(key_families or ())
        self.enabled = True
        self._seen: dict[str, bool] = {}

    def applies_to(self, call: StoreCall) -> bool:
        if not self.enabled:
            return False
        if self.key_families and call.key_family not in self.key_families:
            return False
        if not self.operations:
            return True
        # Call names come from the fixed set of store methods.
        if call.name not in self._seen:
            self._seen[call.name] = any(
                fnmatch.fnmatch(call.name, pattern) for pattern in self.operations
            )
        return self._seen[call.name]


class HookRegistry:
    """Priority-ordered chain of store hooks; lower priority runs outermost."""

    def __init__(self) -> None:
        self._registrations: list[HookRegistration] = []

    def register(
        self,
        hook: StoreHook,
        *,
        priority: int = 0,
        operations: list[str] | None = None,
        key_families: list[str] | None = None,
    ) -> HookRegistration:
        """Add a hook.

        Args:
            hook: The middleware to run.
            priority: Ordering key; lower values wrap higher ones.
            operations: fnmatch patterns on the call name (``otp.store.*``).
            key_families: Restrict to these key families.
        """
        registration = HookRegistration(
            hook,
            priority=priority,
            operations=operations,
            key_families=key_families,
        )
        self._registrations.append(registration)
        self._registrations.sort(key=lambda r: r.priority)
        return registration

    def unregister(self, registration: HookRegistration) -> None:
        self._registrations.remove(registration)

    async def run(self, call: StoreCall, handler: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``handler`` inside every hook that applies to ``call``."""
        chain = [r.hook for r in self._registrations if r.applies_to(call)]

        async def proceed(index: int = 0) -> Any:
            if index == len(chain):
                return await handler()
            return await chain[index](call, lambda: proceed(index + 1))

        return await proceed()

    def clear(self) -> None:
        self._registrations.clear()


class SlowCallLogger:
    """Hook that logs store calls slower than ``threshold_seconds`` at WARNING."""

    def __init__(self, threshold_seconds: float = 0.1) -> None:
        self.threshold_seconds = threshold_seconds

    async def __call__(
        self, call: StoreCall, proceed: Callable[[], Awaitable[Any]]
    ) -> Any:
        started = time.perf_counter()
        try:
            return await proceed()
        finally:
            elapsed = time.perf_counter() - started
            if elapsed >= self.threshold_seconds:
                logger.warning(
                    "Slow store call %s on %s keys: %.3fs",
                    call.name,
                    call.key_family,
                    elapsed,
                )


_hook_registry_var: ContextVar[HookRegistry | None] = ContextVar(
    "otp_hook_registry", default=None
)


def get_hook_registry() -> HookRegistry:
    """Registry for the current context, created empty on first access."""
    registry = _hook_registry_var.get()
    if registry is None:
        registry = HookRegistry()
        _hook_registry_var.set(registry)
    return registry


def set_hook_registry(registry: HookRegistry) -> None:
    _hook_registry_var.set(registry)


__all__: list[str] = [
    "StoreCall",
    "StoreHook",
    "HookRegistration",
    "HookRegistry",
    "SlowCallLogger",
    "get_hook_registry",
    "set_hook_registry",
]
