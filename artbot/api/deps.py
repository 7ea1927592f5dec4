from __future__ import annotations

from fastapi import Depends

from artbot.agents.orchestrator import ArtGenerationOrchestrator
from artbot.config import Settings, get_settings
from artbot.services.backends import BackendCatalog, load_backend_catalog


async def get_app_settings() -> Settings:
    return get_settings()


async def get_orchestrator(settings: Settings = Depends(get_app_settings)) -> ArtGenerationOrchestrator:
    return ArtGenerationOrchestrator(settings=settings)


async def get_backend_catalog(settings: Settings = Depends(get_app_settings)) -> BackendCatalog:
    return load_backend_catalog(settings)


SettingsDep = Depends(get_app_settings)
OrchestratorDep = Depends(get_orchestrator)
CatalogDep = Depends(get_backend_catalog)
