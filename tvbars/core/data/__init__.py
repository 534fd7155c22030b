"""Persistent data: schema, store handle and the raw event log."""
