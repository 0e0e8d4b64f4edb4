"""Document endpoints."""

from __future__ import annotations

from typing import Any

from ...db.fields import parse_input
from ..endpoints import Endpoint
from ..request import RequestContext
from .utils import app_of, body_of, get_owned, output, pagination


async def create_document(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    user_id = request.require_user_id()
    data = parse_input({**body_of(request), "userId": user_id}, app.schema.fields_of("document"))
    document = await app.adapter.create("document", data)
    return output(app, "document", document)


async def list_documents(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    user_id = request.require_user_id()
    limit, offset = pagination(request)
    documents = await app.adapter.find_many(
        "document", {"userId": user_id}, limit=limit, offset=offset, sort_by="createdAt", descending=True
    )
    return {"documents": [output(app, "document", document) for document in documents]}


async def get_document(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    document = await get_owned(app, "document", request.params["id"], request.require_user_id())
    return output(app, "document", document)


async def update_document(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    document = await get_owned(app, "document", request.params["id"], request.require_user_id())
    body = body_of(request)
    # Ownership and creation time are not editable
    editable = {k: v for k, v in body.items() if k not in ("userId", "createdAt")}
    values = parse_input(editable, app.schema.fields_of("document"), "update")
    if not values:
        return output(app, "document", document)
    updated = await app.adapter.update("document", {"id": document["id"]}, values)
    return output(app, "document", updated)


async def delete_document(request: RequestContext) -> dict[str, Any]:
    app = app_of(request)
    document = await get_owned(app, "document", request.params["id"], request.require_user_id())
    await app.adapter.delete_many("suggestion", {"documentId": str(document["id"])})
    await app.adapter.delete("document", {"id": document["id"]})
    return {"id": document["id"], "deleted": True}


def document_endpoints() -> list[Endpoint]:
    return [
        Endpoint("/document", "POST", create_document, requires_auth=True, summary="Create a document"),
        Endpoint("/document/list", "GET", list_documents, requires_auth=True, summary="List the caller's documents"),
        Endpoint("/document/:id", "GET", get_document, requires_auth=True),
        Endpoint("/document/:id", "PATCH", update_document, requires_auth=True),
        Endpoint("/document/:id", "DELETE", delete_document, requires_auth=True),
    ]
