"""Client reactive binding layer.

Maps completed endpoint paths to the reactive signals that should refresh.
Path matching is a pure lookup over every registered listener; refreshing a
signal is delegated to ``Atom`` cells, which any UI layer can subscribe to.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

AtomSubscriber = Callable[[Any, Any], None]

CORE_PATH_METHODS: dict[str, str] = {
    "/chat": "POST",
    "/chat/history": "GET",
    "/chat/:id": "GET",
    "/chat/:id/visibility": "PATCH",
    "/chat/:chatId/messages": "POST",
    "/document": "POST",
    "/document/list": "GET",
    "/document/:id": "GET",
    "/ok": "GET",
}


class Atom:
    """A minimal observable value cell."""

    def __init__(self, value: Any = False):
        self._value = value
        self._subscribers: list[AtomSubscriber] = []

    def get(self) -> Any:
        return self._value

    def set(self, value: Any) -> None:
        old = self._value
        self._value = value
        for subscriber in list(self._subscribers):
            subscriber(value, old)

    def subscribe(self, subscriber: AtomSubscriber) -> Callable[[], None]:
        """Register ``subscriber(value, old_value)``; returns an unsubscribe callable."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe


def core_atoms() -> dict[str, Atom]:
    return {"$chat_signal": Atom(False), "$document_signal": Atom(False)}


@dataclass(frozen=True)
class AtomListener:
    matcher: Callable[[str], bool]
    signal: str


@dataclass(frozen=True)
class ClientPlugin:
    """Client-side half of a plugin."""

    id: str
    atoms: Mapping[str, Atom] = field(default_factory=dict)
    atom_listeners: Sequence[AtomListener] = ()
    path_methods: Mapping[str, str] = field(default_factory=dict)
    get_actions: Callable[[Any], Mapping[str, Any]] | None = None


class ClientBindings:
    """Merged view of every composed client plugin."""

    def __init__(self, plugins: Iterable[ClientPlugin] = ()):
        self.atoms: dict[str, Atom] = core_atoms()
        self.path_methods: dict[str, str] = dict(CORE_PATH_METHODS)
        self.listeners: list[AtomListener] = []
        self.plugins: list[ClientPlugin] = []
        for plugin in plugins:
            self.atoms.update(plugin.atoms)
            self.path_methods.update({path: method.upper() for path, method in plugin.path_methods.items()})
            self.listeners.extend(plugin.atom_listeners)
            self.plugins.append(plugin)

    def on_endpoint_success(self, path: str) -> list[str]:
        """Signals to refresh after a successful request to ``path``.

        Every matching listener contributes, in registration order; a signal
        named by several listeners is reported once.
        """
        signals: list[str] = []
        for listener in self.listeners:
            if listener.matcher(path) and listener.signal not in signals:
                signals.append(listener.signal)
        return signals

    def method_for(self, path: str) -> str:
        """HTTP method a client should use for ``path``; GET unless declared."""
        return self.path_methods.get(path, "GET")

    def notify(self, signal: str) -> bool:
        """Toggle ``signal`` so its subscribers refresh. Returns False for unknown signals."""
        atom = self.atoms.get(signal)
        if atom is None:
            logger.debug("Notify for unknown signal", extra={"signal": signal})
            return False
        atom.set(not atom.get())
        return True

    def listen(self, signal: str, callback: AtomSubscriber) -> Callable[[], None] | None:
        atom = self.atoms.get(signal)
        if atom is None:
            return None
        return atom.subscribe(callback)

    def dispatch(self, path: str) -> list[str]:
        """Notify every signal bound to ``path`` and return them."""
        signals = self.on_endpoint_success(path)
        for signal in signals:
            self.notify(signal)
        return signals

    def actions(self, fetch: Any) -> dict[str, Any]:
        """Collect client plugin actions bound to the given fetch callable."""
        merged: dict[str, Any] = {}
        for plugin in self.plugins:
            if plugin.get_actions is None:
                continue
            merged.update(plugin.get_actions(fetch))
        return merged
