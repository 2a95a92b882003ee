from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from priordeed import service
from priordeed.adapters.registry import default_registry, normalize_county_name, normalize_state
from priordeed.config import Settings

router = APIRouter(tags=["api"])


class PriorDeedRequest(BaseModel):
    address: Optional[str] = None
    county: Optional[str] = None
    state: Optional[str] = None


def get_settings() -> Settings:
    return Settings.from_env()


@router.post("/getPriorDeed")
async def get_prior_deed(body: PriorDeedRequest, settings: Settings = Depends(get_settings)):
    """Fetch the prior deed for an address as a base64 PDF."""
    if not body.address or not body.address.strip():
        raise HTTPException(status_code=400, detail="Missing required parameter: address")

    county = normalize_county_name(body.county) or None
    state = normalize_state(body.state) or None
    if county and default_registry.requires_captcha(county, state) and not settings.has_captcha_token:
        logger.warning(f"Rejected {county}, {state}: CAPTCHA solver not configured")
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "error": "CAPTCHA solver not configured",
                "message": f"{county} County requires CAPTCHA solving. "
                           f"Set TWOCAPTCHA_TOKEN to enable deed downloads.",
            },
        )

    logger.info(f"getPriorDeed: {body.address!r} ({county or '?'}, {state or '?'})")
    result = await service.fetch_prior_deed(
        body.address, county=county, state=state, settings=settings, registry=default_registry
    )
    return JSONResponse(result.to_payload())


@router.get("/counties")
async def counties():
    """Jurisdictions with a registered adapter."""
    return JSONResponse({"counties": default_registry.supported()})


@router.get("/health")
async def api_health(settings: Settings = Depends(get_settings)):
    return JSONResponse({
        "status": "ok",
        "captchaSolver": "enabled" if settings.has_captcha_token else "disabled",
        "counties": len(default_registry.supported()),
    })
