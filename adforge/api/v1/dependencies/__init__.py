"""Reusable API dependencies shared across v1 routes."""

from adforge.api.v1.dependencies.services import Orchestrator, PatternExtraction, Patterns

__all__ = ["Orchestrator", "PatternExtraction", "Patterns"]
