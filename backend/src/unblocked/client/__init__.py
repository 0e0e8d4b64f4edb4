"""Client reactive binding layer."""

from .bindings import Atom, AtomListener, ClientBindings, ClientPlugin

__all__ = ["Atom", "AtomListener", "ClientBindings", "ClientPlugin"]
