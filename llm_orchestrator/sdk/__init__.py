"""
SDK for the LLM orchestrator.

Provides the orchestrator and its task-specialised entry points.
"""

from .orchestrator import LLMOrchestrator, create_orchestrator
from .tasks import (
    analyze_prices,
    build_shopping_list,
    generate_title,
    match_products,
    plan_meals,
    scan_receipt,
)

__all__ = [
    "LLMOrchestrator",
    "analyze_prices",
    "build_shopping_list",
    "create_orchestrator",
    "generate_title",
    "match_products",
    "plan_meals",
    "scan_receipt",
]
