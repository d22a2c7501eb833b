"""Status and query routes for the external settings UI.

Thin HTTP wrappers over StatusService; all routes require the server API key.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from credgate.api.endpoints import validate_api_key
from credgate.core.credentials.masking import mask_secret

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(validate_api_key)])


class DefaultProviderUpdate(BaseModel):
    provider: str = Field(min_length=1)


@router.get("/status")
async def get_status(http_request: Request) -> dict[str, Any]:
    return http_request.app.state.status_service.get_status()


@router.get("/providers")
async def list_providers(http_request: Request) -> dict[str, Any]:
    return {"providers": http_request.app.state.status_service.list_providers()}


@router.get("/default-provider")
async def get_default_provider(http_request: Request) -> dict[str, Any]:
    return {"default_provider": http_request.app.state.status_service.get_default_provider()}


@router.put("/default-provider")
async def set_default_provider(update: DefaultProviderUpdate, http_request: Request) -> dict[str, Any]:
    selected = http_request.app.state.status_service.set_default_provider(update.provider.lower())
    return {"default_provider": selected}


@router.post("/credentials/reload")
async def reload_credentials(http_request: Request) -> dict[str, Any]:
    credentials = await http_request.app.state.status_service.reload_credentials()
    return {"credentials": credentials}


@router.post("/credentials/{provider}/refresh")
async def refresh_credentials(provider: str, http_request: Request) -> dict[str, Any]:
    return {"credential": await http_request.app.state.status_service.refresh_credentials(provider)}


@router.get("/credentials/{provider}/env")
async def list_env_variables(
    provider: str,
    http_request: Request,
    reveal: bool = Query(False, description="Show secret values unmasked"),
) -> dict[str, Any]:
    rows = http_request.app.state.status_service.list_env_variables(provider, reveal=reveal)
    return {"provider": provider, "variables": [row.to_dict() for row in rows]}


@router.post("/config/reload")
async def reload_config(http_request: Request) -> dict[str, Any]:
    """Re-read environment and record file, then re-apply the default provider."""
    state = http_request.app.state
    record = state.config.reload()
    state.manager.apply_default_provider(state.config.default_provider, state.config.default_provider_source)
    return {
        "port": record.port,
        "api_key": mask_secret(record.api_key) if record.api_key else None,
        "default_provider": state.manager.registry.get_default(),
    }
