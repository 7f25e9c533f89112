from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.adapters.llm.factory import create_llm_client
from app.core.config import settings
from app.core.errors import LLMAppError, ValidationAppError
from app.core.rate_limit import enforce_image_analysis_rate_limit, enforce_zoning_rate_limit
from app.schemas.food import (
    AnalyzeImageRequest,
    AnalyzeImageResponse,
    ZoneIngredientsRequest,
    ZoneIngredientsResponse,
)
from app.services.food_analysis_service import FoodAnalysisService

router = APIRouter(tags=["Food"])


def get_food_analysis_service(request: Request) -> FoodAnalysisService:
    """Return the app's analysis service, building it on first use.

    Built lazily so the API (and its rate limiting) starts even when the AI
    provider is not configured; the AI routes then answer with an error.

    Raises:
        LLMAppError: If the provider settings are incomplete.
    """
    service = getattr(request.app.state, "food_service", None)
    if service is not None:
        return service

    try:
        llm = create_llm_client(settings.llm)
    except ValidationAppError as exc:
        raise LLMAppError(code="llm_not_configured", message=exc.message) from exc

    service = FoodAnalysisService(llm, vision_model=settings.llm.vision_model)
    request.app.state.food_service = service
    return service


FoodServiceDep = Annotated[FoodAnalysisService, Depends(get_food_analysis_service)]


@router.post(
    "/analyze-image",
    response_model=AnalyzeImageResponse,
    dependencies=[Depends(enforce_image_analysis_rate_limit)],
)
async def analyze_image(payload: AnalyzeImageRequest, service: FoodServiceDep) -> AnalyzeImageResponse:
    """Identify a meal and its ingredients from one or more photos.

    Rate limited per client IP by the image analysis bucket; rejected calls
    get HTTP 429 with X-RateLimit-* headers before any AI call is made.
    """
    return await service.analyze_meal(payload.all_images())


@router.post(
    "/zone-ingredients",
    response_model=ZoneIngredientsResponse,
    dependencies=[Depends(enforce_zoning_rate_limit)],
)
async def zone_ingredients(payload: ZoneIngredientsRequest, service: FoodServiceDep) -> ZoneIngredientsResponse:
    """Classify ingredients into green/yellow/red/unzoned zones.

    Rate limited per client IP by the zoning bucket.
    """
    return await service.zone_ingredients(payload.ingredients)
