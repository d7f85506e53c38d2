"""Planroom Database — engine registry, sessions, table definitions."""
