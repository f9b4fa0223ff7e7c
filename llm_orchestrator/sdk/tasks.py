"""
Task-specialised entry points.

Each wrapper fixes the task type and shapes the prompt; the contract is
that of LLMOrchestrator.chat.
"""

import logging
from typing import Optional, Sequence

from ..core.errors import OrchestratorError, ValidationError
from ..core.messages import LLMMessage, LLMResponse
from ..core.task_types import TaskType
from ..prompts.templates import (
    LIST_BUILDER_SYSTEM,
    MEAL_PLANNING_SYSTEM,
    PRICE_ANALYSIS_SYSTEM,
    PRODUCT_MATCHING_SYSTEM,
    RECEIPT_PROMPT,
    TITLE_SYSTEM,
    MealPlanInput,
    PriceAnalysisInput,
    build_list_builder_prompt,
    build_meal_planning_prompt,
    build_price_analysis_prompt,
    build_product_matching_prompt,
    build_title_prompt,
)
from .orchestrator import LLMOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"


async def match_products(
    orchestrator: LLMOrchestrator,
    items: Sequence[str],
    dietary: Optional[Sequence[str]] = None,
    brands: Optional[Sequence[str]] = None,
    user_id: Optional[str] = None,
) -> LLMResponse:
    """Match free-text grocery items to structured products (JSON)."""
    if not items:
        raise ValidationError("items is required and cannot be empty")
    return await orchestrator.chat(
        [
            LLMMessage("system", PRODUCT_MATCHING_SYSTEM),
            LLMMessage("user", build_product_matching_prompt(items, dietary, brands)),
        ],
        TaskType.PRODUCT_MATCHING,
        user_id=user_id,
    )


async def scan_receipt(
    orchestrator: LLMOrchestrator,
    image_base64: str,
    user_id: Optional[str] = None,
) -> LLMResponse:
    """Extract receipt data from a base64 JPEG (needs a vision model)."""
    if not image_base64:
        raise ValidationError("image_base64 is required and cannot be empty")
    content = [
        {"type": "text", "text": RECEIPT_PROMPT},
        {
            "type": "image_url",
            "image_url": {"url": f"data:image/jpeg;base64,{image_base64}", "detail": "high"},
        },
    ]
    return await orchestrator.chat(
        [LLMMessage("user", content)],
        TaskType.RECEIPT_OCR,
        user_id=user_id,
    )


async def analyze_prices(
    orchestrator: LLMOrchestrator,
    data: PriceAnalysisInput,
    user_id: Optional[str] = None,
) -> LLMResponse:
    return await orchestrator.chat(
        [
            LLMMessage("system", PRICE_ANALYSIS_SYSTEM),
            LLMMessage("user", build_price_analysis_prompt(data)),
        ],
        TaskType.PRICE_ANALYSIS,
        user_id=user_id,
    )


async def build_shopping_list(
    orchestrator: LLMOrchestrator,
    request: str,
    dietary: Optional[Sequence[str]] = None,
    budget_limit: Optional[float] = None,
    household_size: Optional[int] = None,
    user_id: Optional[str] = None,
) -> LLMResponse:
    """Turn a natural-language request into a shopping list (JSON)."""
    if not request or not request.strip():
        raise ValidationError("request is required and cannot be empty")
    return await orchestrator.chat(
        [
            LLMMessage("system", LIST_BUILDER_SYSTEM),
            LLMMessage("user", build_list_builder_prompt(request, dietary, budget_limit, household_size)),
        ],
        TaskType.LIST_BUILDING,
        user_id=user_id,
    )


async def plan_meals(
    orchestrator: LLMOrchestrator,
    data: MealPlanInput,
    user_id: Optional[str] = None,
) -> LLMResponse:
    return await orchestrator.chat(
        [
            LLMMessage("system", MEAL_PLANNING_SYSTEM),
            LLMMessage("user", build_meal_planning_prompt(data)),
        ],
        TaskType.MEAL_PLANNING,
        user_id=user_id,
    )


async def generate_title(orchestrator: LLMOrchestrator, first_message: str) -> str:
    """Short conversation title; "New Chat" when generation fails."""
    try:
        response = await orchestrator.chat(
            [
                LLMMessage("system", TITLE_SYSTEM),
                LLMMessage("user", build_title_prompt(first_message)),
            ],
            TaskType.TITLE_GENERATION,
        )
    except OrchestratorError as exc:
        logger.info("Title generation failed, using default: %s", exc)
        return DEFAULT_TITLE
    return response.content.strip().strip('"') or DEFAULT_TITLE
