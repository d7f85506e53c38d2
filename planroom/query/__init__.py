"""Planroom Query — read-only projections for selectors and listings."""

from planroom.query.projections import ProjectionService, SelectorOption

__all__ = ["ProjectionService", "SelectorOption"]
