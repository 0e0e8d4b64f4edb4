"""Endpoint registry, request pipeline, built-in routes and ASGI glue."""
