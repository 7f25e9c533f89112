"""Meal image analysis and ingredient zoning backed by an LLM.

The service owns prompt assembly, input sanitisation and normalisation of
model output. Model replies are treated as untrusted: entries that do not
match the expected shape are dropped instead of failing the whole request.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from app.adapters.llm.base import AbstractLLMClient
from app.core.errors import LLMAppError, ValidationAppError
from app.schemas.food import (
    AnalyzedIngredient,
    AnalyzeImageResponse,
    ZonedIngredient,
    ZoneIngredientsResponse,
)

logger = logging.getLogger(__name__)

MAX_INGREDIENT_CHARS = 100
MAX_INGREDIENTS = 100

ZONES = ("green", "yellow", "red", "unzoned")

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

IMAGE_ANALYSIS_PROMPT = """
Identify the meal in the photo and list its visible ingredients.

Return ONLY a JSON object with this shape:
{
  "meal_summary": "short description of the meal",
  "ingredients": [{"name": "ingredient", "is_organic": false}]
}

Use simple singular ingredient names. Set is_organic to true only when the
photo shows clear evidence (label, packaging).
""".strip()

MULTI_IMAGE_NOTE = (
    "Multiple images are provided. Analyze them together: they show the same "
    "meal from different angles."
)

ZONING_PROMPT = """
Classify each ingredient into a traffic-light zone for a gut-health diet:
green (eat freely), yellow (eat in moderation), red (avoid), unzoned (unknown).

Return ONLY a JSON object with this shape:
{
  "ingredients": [
    {"name": "ingredient", "zone": "green", "category": "Vegetables", "group": "Leafy Greens"}
  ]
}

Keep the input names unchanged and return one entry per input ingredient.
""".strip()


def sanitize_ingredients(ingredients: list[str]) -> list[str]:
    """Trim, strip control characters, cap length and drop empty entries."""
    cleaned: list[str] = []
    for raw in ingredients[:MAX_INGREDIENTS]:
        if not isinstance(raw, str):
            continue
        value = _CONTROL_CHARS.sub("", raw).strip()[:MAX_INGREDIENT_CHARS]
        if value:
            cleaned.append(value)
    return cleaned


def normalize_zone(value: Any) -> str:
    """Lower-case a zone label; anything unrecognised becomes ``unzoned``."""
    if isinstance(value, str):
        zone = value.strip().lower()
        if zone in ZONES:
            return zone
    return "unzoned"


def normalize_analyzed_ingredients(raw: Any) -> list[AnalyzedIngredient]:
    """Keep well-formed ingredients, lower-cased and de-duplicated by name."""
    if not isinstance(raw, list):
        return []

    seen: set[str] = set()
    result: list[AnalyzedIngredient] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        organic = item.get("is_organic", item.get("isOrganic", item.get("organic")))
        if not isinstance(name, str) or not isinstance(organic, bool):
            continue
        name = name.strip().lower()
        if not name or name in seen:
            continue
        seen.add(name)
        result.append(AnalyzedIngredient(name=name, is_organic=organic))
    return result


def normalize_zoned_ingredients(raw: Any) -> list[ZonedIngredient]:
    """Keep entries with a name and a group, normalising their zone."""
    if not isinstance(raw, list):
        return []

    result: list[ZonedIngredient] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        group = item.get("group")
        if not isinstance(name, str) or not name.strip():
            continue
        if not isinstance(group, str) or not group.strip():
            continue
        category = item.get("category")
        result.append(
            ZonedIngredient(
                name=name.strip(),
                zone=normalize_zone(item.get("zone")),
                category=category.strip() if isinstance(category, str) and category.strip() else None,
                group=group.strip(),
            )
        )
    return result


class FoodAnalysisService:
    """Orchestrates LLM calls for meal photos and ingredient zoning."""

    def __init__(self, llm: AbstractLLMClient, *, vision_model: str | None = None) -> None:
        self.llm = llm
        self.vision_model = vision_model

    async def _call(self, task: str, prompt: str, **kwargs: Any) -> dict[str, Any]:
        try:
            return await self.llm.generate_json(prompt, **kwargs)
        except RuntimeError as exc:
            logger.error(
                "llm.call_failed",
                extra={"task": task, "error_msg": str(exc)},
            )
            raise LLMAppError(
                code="llm_call_failed",
                message="AI service is temporarily unavailable. Please try again.",
            ) from exc

    async def analyze_meal(self, images: list[str]) -> AnalyzeImageResponse:
        """Identify a meal and its ingredients from one or more photos.

        Raises:
            ValidationAppError: If no images are supplied.
            LLMAppError: If the provider fails or omits the meal summary.
        """
        if not images:
            raise ValidationAppError(code="missing_images", message="At least one image is required")

        prompt = IMAGE_ANALYSIS_PROMPT
        if len(images) > 1:
            prompt = f"{prompt}\n\n{MULTI_IMAGE_NOTE}"

        data = await self._call(
            "image_analysis",
            prompt,
            images=images,
            model=self.vision_model,
            max_tokens=400,
        )

        summary = data.get("meal_summary", data.get("mealSummary"))
        if not isinstance(summary, str) or not summary.strip():
            logger.error("llm.invalid_response", extra={"task": "image_analysis", "keys": sorted(data)})
            raise LLMAppError(
                code="llm_invalid_response",
                message="AI service returned an unexpected response.",
            )

        ingredients = normalize_analyzed_ingredients(data.get("ingredients"))
        logger.info(
            "food.image_analyzed",
            extra={"image_count": len(images), "ingredient_count": len(ingredients)},
        )
        return AnalyzeImageResponse(meal_summary=summary.strip(), ingredients=ingredients)

    async def zone_ingredients(self, ingredients: list[str]) -> ZoneIngredientsResponse:
        """Classify ingredients into green/yellow/red/unzoned.

        Raises:
            ValidationAppError: If nothing is left after sanitisation.
            LLMAppError: If the provider call fails.
        """
        cleaned = sanitize_ingredients(ingredients)
        if not cleaned:
            raise ValidationAppError(
                code="invalid_ingredients",
                message="No valid ingredients provided after sanitization",
                details={"context": {"received": len(ingredients), "usable": 0}},
            )

        prompt = f"{ZONING_PROMPT}\n\nInput: {json.dumps(cleaned)}"
        data = await self._call("ingredient_zoning", prompt, max_tokens=1024)

        zoned = normalize_zoned_ingredients(data.get("ingredients"))
        if not zoned:
            logger.warning("food.zoning_empty", extra={"ingredient_count": len(cleaned)})

        return ZoneIngredientsResponse(ingredients=zoned)
