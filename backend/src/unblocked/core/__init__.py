"""Core infrastructure: configuration, logging, errors, caching and response envelopes."""
