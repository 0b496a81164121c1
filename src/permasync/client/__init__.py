"""Sync client: service adapters, local metadata store, key cache and CLI."""
