"""Unit tests for FoodAnalysisService and its normalisation helpers."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.errors import LLMAppError, ValidationAppError
from app.services.food_analysis_service import (
    MAX_INGREDIENT_CHARS,
    MULTI_IMAGE_NOTE,
    FoodAnalysisService,
    normalize_analyzed_ingredients,
    normalize_zone,
    normalize_zoned_ingredients,
    sanitize_ingredients,
)

IMAGE = "data:image/jpeg;base64,/9j/4AAQ"


@pytest.fixture
def llm() -> MagicMock:
    client = MagicMock()
    client.generate_json = AsyncMock()
    return client


@pytest.fixture
def service(llm: MagicMock) -> FoodAnalysisService:
    return FoodAnalysisService(llm, vision_model="vision-model")


class TestHelperFunctions:
    """Test module-level helper functions."""

    def test_sanitize_strips_control_chars_and_blanks(self) -> None:
        result = sanitize_ingredients(["  kale \n", "\x00\x07", "", "oat\x1fmilk"])

        assert result == ["kale", "oatmilk"]

    def test_sanitize_caps_length(self) -> None:
        result = sanitize_ingredients(["x" * (MAX_INGREDIENT_CHARS + 20)])

        assert result == ["x" * MAX_INGREDIENT_CHARS]

    def test_sanitize_skips_non_strings(self) -> None:
        assert sanitize_ingredients(["rice", 42, None]) == ["rice"]  # type: ignore[list-item]

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Green", "green"), (" RED ", "red"), ("yellow", "yellow"), ("purple", "unzoned"), (None, "unzoned")],
    )
    def test_normalize_zone(self, raw, expected) -> None:
        assert normalize_zone(raw) == expected

    def test_normalize_analyzed_accepts_key_variants(self) -> None:
        result = normalize_analyzed_ingredients(
            [
                {"name": "Salmon", "is_organic": False},
                {"name": "Kale", "isOrganic": True},
                {"name": "rice", "organic": False},
            ]
        )

        assert [(i.name, i.is_organic) for i in result] == [
            ("salmon", False),
            ("kale", True),
            ("rice", False),
        ]

    def test_normalize_analyzed_drops_malformed_and_duplicates(self) -> None:
        result = normalize_analyzed_ingredients(
            [
                {"name": "egg", "is_organic": False},
                {"name": "EGG", "is_organic": True},
                {"name": "toast"},
                {"is_organic": True},
                "butter",
            ]
        )

        assert [i.name for i in result] == ["egg"]

    def test_normalize_analyzed_non_list(self) -> None:
        assert normalize_analyzed_ingredients({"name": "egg"}) == []

    def test_normalize_zoned_requires_name_and_group(self) -> None:
        result = normalize_zoned_ingredients(
            [
                {"name": "kale", "zone": "GREEN", "category": "Vegetables", "group": "Leafy Greens"},
                {"name": "sugar", "zone": "red"},
                {"zone": "yellow", "group": "Grains"},
                {"name": "tofu", "zone": "blue", "category": " ", "group": "Soy"},
            ]
        )

        assert len(result) == 2
        assert result[0].zone == "green"
        assert result[1].name == "tofu"
        assert result[1].zone == "unzoned"
        assert result[1].category is None


class TestAnalyzeMeal:
    @pytest.mark.asyncio
    async def test_single_image(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        llm.generate_json.return_value = {
            "meal_summary": " Porridge with berries ",
            "ingredients": [{"name": "Oats", "is_organic": True}],
        }

        result = await service.analyze_meal([IMAGE])

        assert result.meal_summary == "Porridge with berries"
        assert result.ingredients[0].name == "oats"
        prompt = llm.generate_json.await_args.args[0]
        assert MULTI_IMAGE_NOTE not in prompt
        kwargs = llm.generate_json.await_args.kwargs
        assert kwargs["images"] == [IMAGE]
        assert kwargs["model"] == "vision-model"

    @pytest.mark.asyncio
    async def test_multiple_images_adds_note(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        llm.generate_json.return_value = {"mealSummary": "Salad", "ingredients": []}

        result = await service.analyze_meal([IMAGE, IMAGE])

        assert result.meal_summary == "Salad"
        assert MULTI_IMAGE_NOTE in llm.generate_json.await_args.args[0]

    @pytest.mark.asyncio
    async def test_no_images(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            await service.analyze_meal([])

        assert exc_info.value.code == "missing_images"
        llm.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_summary(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        llm.generate_json.return_value = {"ingredients": []}

        with pytest.raises(LLMAppError) as exc_info:
            await service.analyze_meal([IMAGE])

        assert exc_info.value.code == "llm_invalid_response"

    @pytest.mark.asyncio
    async def test_provider_failure(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        llm.generate_json.side_effect = RuntimeError("LLM provider error: boom")

        with pytest.raises(LLMAppError) as exc_info:
            await service.analyze_meal([IMAGE])

        assert exc_info.value.code == "llm_call_failed"
        assert "boom" not in exc_info.value.message


class TestZoneIngredients:
    @pytest.mark.asyncio
    async def test_prompt_contains_sanitized_input(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        llm.generate_json.return_value = {
            "ingredients": [{"name": "kale", "zone": "green", "category": "Vegetables", "group": "Leafy Greens"}]
        }

        result = await service.zone_ingredients([" kale ", ""])

        assert [i.name for i in result.ingredients] == ["kale"]
        prompt = llm.generate_json.await_args.args[0]
        assert prompt.endswith(json.dumps(["kale"]))
        assert "images" not in llm.generate_json.await_args.kwargs

    @pytest.mark.asyncio
    async def test_all_blank(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            await service.zone_ingredients(["  ", "\n"])

        assert exc_info.value.code == "invalid_ingredients"
        assert exc_info.value.details == {"context": {"received": 2, "usable": 0}}
        llm.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unusable_reply_yields_empty_list(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        llm.generate_json.return_value = {"result": "nothing"}

        result = await service.zone_ingredients(["rice"])

        assert result.ingredients == []

    @pytest.mark.asyncio
    async def test_provider_failure(self, service: FoodAnalysisService, llm: MagicMock) -> None:
        llm.generate_json.side_effect = RuntimeError("LLM returned invalid JSON")

        with pytest.raises(LLMAppError):
            await service.zone_ingredients(["rice"])
