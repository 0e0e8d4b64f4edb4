"""Chat and message endpoints."""

from __future__ import annotations

from typing import Any

from ...core.exceptions import ValidationError
from ...db.fields import parse_input
from ..endpoints import Endpoint
from ..request import RequestContext
from .utils import app_of, body_of, get_owned, output, pagination


async def create_chat(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    user_id = request.require_user_id()
    data = parse_input({**body_of(request), "userId": user_id}, app.schema.fields_of("chat"))
    chat = await app.adapter.create("chat", data)
    return output(app, "chat", chat)


async def get_chat_history(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    user_id = request.require_user_id()
    limit, offset = pagination(request)
    chats = await app.adapter.find_many(
        "chat", {"userId": user_id}, limit=limit + 1, offset=offset, sort_by="createdAt", descending=True
    )
    return {
        "chats": [output(app, "chat", chat) for chat in chats[:limit]],
        "has_more": len(chats) > limit,
    }


async def get_chat(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    chat = await get_owned(app, "chat", request.params["id"], request.require_user_id())
    return output(app, "chat", chat)


async def update_chat_visibility(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    chat = await get_owned(app, "chat", request.params["id"], request.require_user_id())
    body = body_of(request)
    if "visibility" not in body:
        raise ValidationError("visibility is required", details={"field": "visibility"})
    values = parse_input({"visibility": body["visibility"]}, app.schema.fields_of("chat"), "update")
    updated = await app.adapter.update("chat", {"id": chat["id"]}, values)
    return output(app, "chat", updated)


async def delete_chat(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    chat = await get_owned(app, "chat", request.params["id"], request.require_user_id())
    for dependent in ("vote", "message", "stream"):
        await app.adapter.delete_many(dependent, {"chatId": chat["id"]})
    await app.adapter.delete("chat", {"id": chat["id"]})
    return {"id": chat["id"], "deleted": True}


async def get_chat_messages(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    chat = await get_owned(app, "chat", request.params["chatId"], request.require_user_id())
    messages = await app.adapter.find_many("message", {"chatId": chat["id"]}, sort_by="createdAt")
    return {"messages": [output(app, "message", message) for message in messages]}


async def save_messages(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    chat = await get_owned(app, "chat", request.params["chatId"], request.require_user_id())
    fields = app.schema.fields_of("message")
    incoming = body_of(request).get("messages") or []
    if not isinstance(incoming, list) or not all(isinstance(message, dict) for message in incoming):
        raise ValidationError("messages must be a list of objects", details={"field": "messages"})
    # Validate everything before writing anything
    rows = [parse_input({**message, "chatId": chat["id"]}, fields) for message in incoming]
    saved = [await app.adapter.create("message", row) for row in rows]
    return {"messages": [output(app, "message", message) for message in saved]}


def chat_endpoints() -> list[Endpoint]:
    return [
        Endpoint("/chat", "POST", create_chat, requires_auth=True, summary="Create a chat"),
        Endpoint("/chat/history", "GET", get_chat_history, requires_auth=True, summary="List the caller's chats"),
        Endpoint("/chat/:id", "GET", get_chat, requires_auth=True),
        Endpoint("/chat/:id/visibility", "PATCH", update_chat_visibility, requires_auth=True),
        Endpoint("/chat/:id", "DELETE", delete_chat, requires_auth=True),
        Endpoint("/chat/:chatId/messages", "GET", get_chat_messages, requires_auth=True),
        Endpoint("/chat/:chatId/messages", "POST", save_messages, requires_auth=True),
    ]
