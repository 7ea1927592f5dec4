from .image import ImageService
from .llm import LLMService, create_llm_service
from .replicate import ReplicateService

__all__ = ["ImageService", "LLMService", "ReplicateService", "create_llm_service"]
