from __future__ import annotations

from fastapi import APIRouter

from artbot.api.deps import CatalogDep
from artbot.schemas.generation import BackendRead
from artbot.services.backends import BackendCatalog

router = APIRouter()


@router.get("", response_model=list[BackendRead])
async def list_backends(catalog: BackendCatalog = CatalogDep):
    """按降级顺序列出图像后端"""
    return [
        BackendRead(
            id=backend.id,
            name=backend.name,
            min_dim=backend.min_dim,
            max_dim=backend.max_dim,
            default_width=backend.default_width,
            default_height=backend.default_height,
            supported_params=sorted(backend.param_names),
            trigger_keywords=list(backend.trigger_keywords),
            leading_trigger=backend.leading_trigger,
            output_shape=backend.output_shape.value,
        )
        for backend in catalog.ladder()
    ]
