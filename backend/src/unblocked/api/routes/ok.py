"""Liveness endpoint."""

from ..endpoints import Endpoint
from ..request import RequestContext


async def ok(_: RequestContext) -> dict[str, bool]:
    return {"ok": True}


def ok_endpoints() -> list[Endpoint]:
    return [Endpoint("/ok", "GET", ok, hidden=True)]
