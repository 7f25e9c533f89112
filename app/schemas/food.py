"""Pydantic schemas for the AI-backed food endpoints."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

MAX_IMAGES_PER_REQUEST = 4

Zone = Literal["green", "yellow", "red", "unzoned"]


class AnalyzeImageRequest(BaseModel):
    """One or more photos of the same meal, as data URLs or HTTPS URLs."""

    image: str | None = Field(
        None,
        min_length=1,
        description="Single image (data URL or HTTPS URL).",
    )
    images: list[str] | None = Field(
        None,
        description=f"Up to {MAX_IMAGES_PER_REQUEST} images of the same meal from different angles.",
    )

    @model_validator(mode="after")
    def _require_images(self) -> "AnalyzeImageRequest":
        collected = self.all_images()
        if not collected:
            raise ValueError("Either image or images array is required")
        if len(collected) > MAX_IMAGES_PER_REQUEST:
            raise ValueError(f"At most {MAX_IMAGES_PER_REQUEST} images are allowed per request")
        return self

    def all_images(self) -> list[str]:
        if self.images:
            return [img for img in self.images if img]
        return [self.image] if self.image else []


class AnalyzedIngredient(BaseModel):
    name: str = Field(..., description="Lower-cased ingredient name.")
    is_organic: bool = Field(..., description="Whether the ingredient looks organic.")


class AnalyzeImageResponse(BaseModel):
    """Meal identified from photos, with de-duplicated ingredients."""

    meal_summary: str = Field(..., description="Short description of the meal.")
    ingredients: list[AnalyzedIngredient] = Field(default_factory=list)


class ZoneIngredientsRequest(BaseModel):
    ingredients: list[str] = Field(
        ...,
        min_length=1,
        description="Ingredient names to classify.",
    )


class ZonedIngredient(BaseModel):
    """Traffic-light classification for one ingredient."""

    name: str
    zone: Zone = Field(
        "unzoned",
        description="green (eat freely), yellow (moderate), red (avoid), unzoned (unknown).",
    )
    category: str | None = Field(None, description="Main classification, e.g. 'Proteins'.")
    group: str = Field(..., description="Primary group, e.g. 'Low-Sugar Berries'.")


class ZoneIngredientsResponse(BaseModel):
    ingredients: list[ZonedIngredient] = Field(default_factory=list)
