from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from deep_research.api.deps import get_config_store
from deep_research.models.schemas import ResearchConfig
from deep_research.services.config_store import ConfigStore

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("")
async def read_config(config_store: ConfigStore = Depends(get_config_store)):
    """Current global research configuration."""
    return config_store.load().model_dump(by_alias=True)


@router.post("")
async def update_config(
    payload: dict[str, Any] = Body(...),
    config_store: ConfigStore = Depends(get_config_store),
):
    """Merge the provided fields into the stored configuration."""
    try:
        config = config_store.load().merged(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False, include_context=False))
    config_store.save(config)
    return {"success": True, "config": config.model_dump(by_alias=True)}
