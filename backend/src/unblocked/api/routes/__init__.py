"""Built-in endpoints registered before any plugin endpoint."""

from ..endpoints import Endpoint
from .chat import chat_endpoints
from .document import document_endpoints
from .ok import ok_endpoints


def builtin_endpoints() -> list[Endpoint]:
    return [*ok_endpoints(), *chat_endpoints(), *document_endpoints()]


__all__ = ["builtin_endpoints"]
