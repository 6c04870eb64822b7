"""Service dependencies for v1 routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from adforge.integrations.media_store import MediaStore
from adforge.services.generation_orchestrator import (
    GenerationOrchestrator,
    get_generation_orchestrator,
)
from adforge.services.pattern_extraction import PatternExtractionService
from adforge.services.pattern_library import PatternLibrary


def get_pattern_library() -> PatternLibrary:
    return get_generation_orchestrator().patterns


def get_pattern_extraction_service() -> PatternExtractionService:
    return PatternExtractionService(store=MediaStore())


Orchestrator = Annotated[GenerationOrchestrator, Depends(get_generation_orchestrator)]
Patterns = Annotated[PatternLibrary, Depends(get_pattern_library)]
PatternExtraction = Annotated[PatternExtractionService, Depends(get_pattern_extraction_service)]
