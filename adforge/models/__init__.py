"""SQLAlchemy database models."""
from dotenv import load_dotenv
from adforge.models.base import Base
from adforge.models.catalog import (
    AdSceneTemplate,
    BrandDNA,
    BrandProfile,
    Product,
    SocialConnection,
    StyleReference,
)
from adforge.models.generation import Generation, GenerationJob, GenerationPerformance
from adforge.models.pattern import ApplicationHistory, LearnedPattern, UploadRecord


load_dotenv()

__all__ = [
    "Base",
    "Product",
    "AdSceneTemplate",
    "BrandProfile",
    "BrandDNA",
    "StyleReference",
    "SocialConnection",
    "Generation",
    "GenerationJob",
    "GenerationPerformance",
    "LearnedPattern",
    "UploadRecord",
    "ApplicationHistory",
]
