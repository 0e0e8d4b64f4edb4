"""Built-in tables that every Unblocked instance carries."""

import json
from datetime import UTC, datetime

from .fields import FieldAttribute, FieldReference, TableDefinition

RATE_LIMIT_TABLE = "rateLimit"


def utc_now() -> datetime:
    return datetime.now(UTC)


def _created_at() -> FieldAttribute:
    return FieldAttribute(type="date", default_value=utc_now)


def _dump_json(value):
    return value if isinstance(value, str) else json.dumps(value)


def _load_json(value):
    return json.loads(value) if isinstance(value, str) else value


def _json_field() -> FieldAttribute:
    """String column holding JSON; callers read and write Python values."""
    return FieldAttribute(type="string", transform_input=_dump_json, transform_output=_load_json)


def _chat_ref() -> FieldReference:
    return FieldReference(model="chat", field="id", on_delete="cascade")


def get_builtin_tables() -> dict[str, TableDefinition]:
    """Return fresh copies of the core tables, in creation order."""
    return {
        "chat": TableDefinition(
            model_name="Chat",
            order=1,
            fields={
                "createdAt": _created_at(),
                "title": FieldAttribute(type="string"),
                "userId": FieldAttribute(type="string"),
                "visibility": FieldAttribute(type=("public", "private"), default_value="private"),
            },
        ),
        "message": TableDefinition(
            model_name="Message",
            order=2,
            fields={
                "chatId": FieldAttribute(type="string", references=_chat_ref()),
                "role": FieldAttribute(type="string"),
                "parts": _json_field(),
                "attachments": _json_field(),
                "createdAt": _created_at(),
            },
        ),
        "vote": TableDefinition(
            model_name="Vote",
            order=3,
            fields={
                "chatId": FieldAttribute(type="string", references=_chat_ref()),
                "messageId": FieldAttribute(
                    type="string",
                    references=FieldReference(model="message", field="id", on_delete="cascade"),
                ),
                "isUpvoted": FieldAttribute(type="boolean"),
            },
        ),
        "document": TableDefinition(
            model_name="Document",
            order=4,
            fields={
                "createdAt": _created_at(),
                "title": FieldAttribute(type="string"),
                "content": FieldAttribute(type="string", required=False),
                "kind": FieldAttribute(type=("text", "code", "image", "sheet"), default_value="text"),
                "userId": FieldAttribute(type="string"),
            },
        ),
        "suggestion": TableDefinition(
            model_name="Suggestion",
            order=5,
            fields={
                "documentId": FieldAttribute(type="string"),
                "documentCreatedAt": FieldAttribute(type="date"),
                "originalText": FieldAttribute(type="string"),
                "suggestedText": FieldAttribute(type="string"),
                "description": FieldAttribute(type="string", required=False),
                "isResolved": FieldAttribute(type="boolean", default_value=False),
                "userId": FieldAttribute(type="string"),
                "createdAt": _created_at(),
            },
        ),
        "stream": TableDefinition(
            model_name="Stream",
            order=6,
            fields={
                "chatId": FieldAttribute(type="string", references=_chat_ref()),
                "createdAt": _created_at(),
            },
        ),
    }


def get_rate_limit_table(model_name: str | None = None, fields: dict[str, str] | None = None) -> TableDefinition:
    """Counter table used when rate limits are stored in the database.

    ``lastRequest`` holds the start of the current window in epoch
    milliseconds.
    """
    fields = fields or {}
    return TableDefinition(
        model_name=model_name or RATE_LIMIT_TABLE,
        fields={
            "key": FieldAttribute(type="string", unique=True, field_name=fields.get("key") or "key"),
            "count": FieldAttribute(type="number", field_name=fields.get("count") or "count"),
            "lastRequest": FieldAttribute(
                type="number",
                bigint=True,
                field_name=fields.get("lastRequest") or "lastRequest",
            ),
        },
    )
