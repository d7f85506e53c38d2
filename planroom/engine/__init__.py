"""Planroom Engine — configuration, errors, structured logging, runtime wiring."""
