from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[str, Any], None]


class StateContainer(Generic[T]):
    """Single-owner state holder with change notification.

    Subclasses own one collection and expose derived views as properties so
    every read reflects the current filters. Mutations return ``bool`` and
    record failures in ``error`` instead of raising into callers.
    """

    name = "state"

    def __init__(self, loader: Callable[[], Awaitable[list[T]]] | None = None) -> None:
        self._loader = loader
        self._items: list[T] = []
        self.loading = False
        self.loaded = False
        self.error: str | None = None
        self._listeners: list[Listener] = []

    @property
    def items(self) -> list[T]:
        return list(self._items)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: str, payload: Any = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:  # noqa: BLE001 - one bad listener must not block the rest.
                logger.exception("state_listener_failed state=%s event=%s", self.name, event)

    def _fail(self, message: str) -> bool:
        self.error = message
        logger.warning("state_action_failed state=%s error=%s", self.name, message)
        self._notify("error", message)
        return False

    def _succeed(self, event: str, payload: Any = None) -> bool:
        self.error = None
        self._notify(event, payload)
        return True

    async def load(self) -> bool:
        """Replace the collection from the backing source.

        On failure the prior collection is kept untouched and the error is
        recorded for the caller to surface.
        """
        if self._loader is None:
            return self._fail("No data source configured")
        self.loading = True
        self._notify("loading")
        try:
            loaded = await self._loader()
        except Exception as exc:  # noqa: BLE001 - load failures are reported, not raised.
            self.loading = False
            return self._fail(f"Failed to load {self.name}: {exc}")
        self._items = list(loaded)
        self.loading = False
        self.loaded = True
        self._on_loaded()
        return self._succeed("loaded", len(self._items))

    async def ensure_loaded(self) -> bool:
        # Load once on first use; later reads see the held collection.
        if self.loaded:
            return True
        return await self.load()

    def _on_loaded(self) -> None:
        # Hook for subclasses that keep selections or indexes in sync.
        return None
