"""
Prompt builders for the task wrappers.

Each builder turns structured input into the user prompt for one task;
the matching system prompt lives next to it.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence


PRODUCT_MATCHING_SYSTEM = (
    "You are a product matching AI for a grocery price comparison platform. "
    "Match user input to structured product data with high accuracy. Always return valid JSON."
)

PRICE_ANALYSIS_SYSTEM = (
    "You are a grocery price analyst. Provide concise, data-driven buying recommendations "
    "based on price trends. Be specific about timing and store recommendations."
)

LIST_BUILDER_SYSTEM = (
    "You are a smart shopping list generator. Create detailed, organized shopping lists from "
    "natural language requests. Be practical with quantities and provide accurate price "
    "estimates for US grocery stores."
)

MEAL_PLANNING_SYSTEM = (
    "You are a budget-conscious meal planner. Build practical meal plans that respect dietary "
    "restrictions and stay within budget. Always return valid JSON."
)

TITLE_SYSTEM = "Generate a very short title (max 5 words) for this conversation. Return only the title."

RECEIPT_PROMPT = """Extract all information from this grocery receipt image.

Return JSON with: storeName, storeAddress, items (name, price, quantity, category, discount), subtotal, total, tax, purchaseDate, paymentMethod, confidence.

Rules:
- Extract ALL items visible on receipt
- Clean up item names (remove codes, abbreviations)
- Use XX.XX format for prices
- Parse date to YYYY-MM-DD
- Return valid JSON only"""


def build_product_matching_prompt(
    items: Sequence[str],
    dietary_restrictions: Optional[Sequence[str]] = None,
    preferred_brands: Optional[Sequence[str]] = None,
) -> str:
    lines = ["Match these grocery items to structured product data:", ""]
    lines += [f"{index}. {item}" for index, item in enumerate(items, start=1)]

    if dietary_restrictions:
        lines += ["", f"Dietary restrictions: {', '.join(dietary_restrictions)}"]
    if preferred_brands:
        lines.append(f"Preferred brands: {', '.join(preferred_brands)}")

    lines += ["", """Return a JSON array with this exact structure for each item:
[
  {
    "userInput": "original input text",
    "matchedProduct": "canonical product name",
    "brand": "brand name or null",
    "category": "dairy|produce|meat|bakery|snacks|beverages|pantry|frozen|household|other",
    "size": "size/quantity string or null",
    "attributes": {"organic": false, "glutenFree": false, "dairyFree": false, "vegan": false},
    "confidence": 0.95
  }
]

Rules:
- Always return valid JSON
- Set confidence between 0.0-1.0
- Use standard product names (e.g., "2% Reduced Fat Milk" not "milk")
- If brand isn't specified, set to null"""]
    return "\n".join(lines)


@dataclass(frozen=True)
class PricePoint:
    date: str
    price: float
    store: str


@dataclass(frozen=True)
class PricePrediction:
    predicted_price: float
    confidence: float
    days_ahead: int


@dataclass(frozen=True)
class PriceAnalysisInput:
    """Price history and statistics for one product."""
    product_name: str
    current_price: float
    average_price: float
    min_price: float
    max_price: float
    price_history: List[PricePoint] = field(default_factory=list)
    prediction: Optional[PricePrediction] = None
    promotional_patterns: List[str] = field(default_factory=list)


def build_price_analysis_prompt(data: PriceAnalysisInput) -> str:
    lines = [
        f'Analyze the price data for "{data.product_name}" and provide a concise, actionable recommendation.',
        "",
        f"Current price: ${data.current_price:.2f}",
        f"Average price (6 months): ${data.average_price:.2f}",
        f"Price range: ${data.min_price:.2f} - ${data.max_price:.2f}",
        "",
    ]

    if data.price_history:
        lines.append("Recent price history:")
        # Last ten points keep the prompt short
        lines += [f"  {p.date}: ${p.price:.2f} at {p.store}" for p in data.price_history[-10:]]
        lines.append("")

    if data.prediction:
        p = data.prediction
        lines += [
            f"Price prediction: ${p.predicted_price:.2f} in {p.days_ahead} days "
            f"({p.confidence * 100:.0f}% confidence)",
            "",
        ]

    if data.promotional_patterns:
        lines.append("Known promotional patterns:")
        lines += [f"  - {pattern}" for pattern in data.promotional_patterns]
        lines.append("")

    lines.append("""Provide your analysis in this format:
1. Current value assessment (is it a good price right now?)
2. Buy/wait recommendation with reasoning
3. Best time/store to buy
4. Savings tip (one specific actionable tip)

Keep the response under 150 words. Be direct and specific.""")
    return "\n".join(lines)


def build_list_builder_prompt(
    request: str,
    dietary_restrictions: Optional[Sequence[str]] = None,
    budget_limit: Optional[float] = None,
    household_size: Optional[int] = None,
) -> str:
    lines = [f'Generate a detailed shopping list based on this request: "{request}"', ""]

    if dietary_restrictions:
        lines.append(f"Dietary restrictions (MUST follow): {', '.join(dietary_restrictions)}")
    if budget_limit:
        lines.append(f"Budget limit: ${budget_limit:.2f}")
    if household_size:
        lines.append(f"Household size: {household_size} people")

    lines += ["", """Return a JSON object with this exact structure:
{
  "listName": "A descriptive name for this shopping list",
  "items": [
    {
      "name": "item name (generic, searchable)",
      "quantity": 2,
      "unit": "lbs|oz|cups|each|dozen|gallon|bunch|bag|can|box|bottle|pack|null",
      "category": "produce|dairy|meat|bakery|frozen|pantry|beverages|snacks|condiments|other",
      "estimatedPrice": 3.99,
      "notes": "optional notes"
    }
  ],
  "estimatedTotal": 45.50,
  "servings": 4,
  "tips": ["Shopping tips relevant to this list"]
}

Rules:
- Use generic product names that would match grocery store products
- Provide realistic US grocery price estimates
- Stay within budget if specified"""]
    return "\n".join(lines)


@dataclass(frozen=True)
class MealPlanInput:
    budget: float
    days: int
    household_size: int
    dietary_restrictions: List[str] = field(default_factory=list)
    preferred_cuisines: List[str] = field(default_factory=list)
    disliked_ingredients: List[str] = field(default_factory=list)
    skill_level: Optional[str] = None
    max_prep_time_minutes: Optional[int] = None

    def __post_init__(self):
        if self.days <= 0:
            raise ValueError("days must be > 0")
        if self.household_size <= 0:
            raise ValueError("household_size must be > 0")


def build_meal_planning_prompt(data: MealPlanInput) -> str:
    # Roughly 2.5 meals a day
    per_meal = data.budget / (data.days * 2.5)
    lines = [
        f"Create a {data.days}-day meal plan with the following constraints:",
        "",
        f"Budget: ${data.budget:.2f} total",
        f"Household size: {data.household_size} people",
        f"Per-meal budget target: ~${per_meal:.2f}",
        "",
    ]

    if data.dietary_restrictions:
        lines.append(f"Dietary restrictions (MUST follow): {', '.join(data.dietary_restrictions)}")
    if data.preferred_cuisines:
        lines.append(f"Preferred cuisines: {', '.join(data.preferred_cuisines)}")
    if data.disliked_ingredients:
        lines.append(f"Avoid: {', '.join(data.disliked_ingredients)}")
    if data.skill_level:
        lines.append(f"Cooking skill: {data.skill_level}")
    if data.max_prep_time_minutes:
        lines.append(f"Max prep time per meal: {data.max_prep_time_minutes} minutes")

    lines += ["", f"""Return a JSON object with this exact structure:
{{
  "days": [
    {{
      "day": 1,
      "meals": [
        {{
          "type": "breakfast|lunch|dinner|snack",
          "name": "Meal Name",
          "servings": {data.household_size},
          "prepTimeMinutes": 20,
          "ingredients": [{{"name": "ingredient name", "quantity": "2 cups", "estimatedCost": 3.50}}]
        }}
      ]
    }}
  ],
  "shoppingList": [{{"name": "item", "quantity": "amount", "estimatedCost": 0.0}}],
  "estimatedTotal": 0.0
}}"""]
    return "\n".join(lines)


def build_title_prompt(first_message: str) -> str:
    return f'User said: "{first_message}"\n\nGenerate a short title:'
