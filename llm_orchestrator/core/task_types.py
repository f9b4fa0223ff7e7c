"""
Task types used for routing and usage attribution.
"""

from enum import Enum
from typing import Optional, Union


class TaskType(str, Enum):
    """Closed set of calling use cases the orchestrator knows how to route."""
    CHAT = "chat"
    PRODUCT_MATCHING = "product_matching"
    RECEIPT_OCR = "receipt_ocr"
    PRICE_ANALYSIS = "price_analysis"
    MEAL_PLANNING = "meal_planning"
    LIST_BUILDING = "list_building"
    SPENDING_ANALYSIS = "spending_analysis"
    ALERT_CONTEXT = "alert_context"
    CONTENT_GENERATION = "content_generation"
    DATA_QUALITY = "data_quality"
    TRANSLATION = "translation"
    TITLE_GENERATION = "title_generation"


def parse_task_type(value: Union[TaskType, str]) -> Optional[TaskType]:
    """Return the TaskType for *value*, or None if it is not a known task.

    Args:
        value: TaskType member or its string value

    Returns:
        Matching TaskType, or None for unknown strings
    """
    if isinstance(value, TaskType):
        return value
    try:
        return TaskType(value)
    except ValueError:
        return None
