"""Schema model, registry, storage adapters and migrations."""
