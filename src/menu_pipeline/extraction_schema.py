"""
Extraction schema, prompt and response validation.

RESPONSE_SCHEMA is sent upstream as the structured-output schema (Gemini
OpenAPI subset, upper-case type names). The pydantic models below validate
what actually comes back before any MenuData is built from it.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ALLERGEN_VOCABULARY = [
    'Beef', 'Pork', 'Peanuts', 'Shrimp', 'Seafood',
    'Coriander', 'Nuts', 'Soy', 'Eggs', 'Milk',
]
DIETARY_VOCABULARY = ['Spicy', 'Vegan', 'Veg', 'Gluten-Free']

DEFAULT_CATEGORY = 'General'

SYSTEM_INSTRUCTION = (
    "You are an expert menu digitizer. Your goal is 100% recall of items. "
    "Be strict about allergen detection."
)

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "restaurantName": {"type": "STRING", "description": "Name of the restaurant if visible on the menu."},
        "originalCurrency": {"type": "STRING", "description": "The currency code found on the menu (e.g., JPY, EUR, USD)."},
        "exchangeRate": {"type": "NUMBER", "description": "Real-time exchange rate: 1 unit of Menu Currency = X units of Target Currency."},
        "detectedLanguage": {"type": "STRING", "description": "The primary language detected on the menu."},
        "items": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "originalName": {"type": "STRING", "description": "EXACT text from image. Do not autocorrect."},
                    "translatedName": {"type": "STRING"},
                    "price": {"type": "NUMBER", "description": "Base price. If price is missing or illegible, return 0."},
                    "category": {"type": "STRING"},
                    "options": {
                        "type": "ARRAY",
                        "description": "Variants like sizes (Small/Large) or add-ons listed with the item.",
                        "items": {
                            "type": "OBJECT",
                            "properties": {
                                "name": {"type": "STRING"},
                                "price": {"type": "NUMBER"},
                            },
                        },
                    },
                    "shortDescription": {"type": "STRING", "description": "Brief description (5-8 words)."},
                    "allergy_warning": {"type": "BOOLEAN", "description": "True if contains common allergens."},
                    "allergens": {
                        "type": "ARRAY",
                        "items": {"type": "STRING"},
                        "description": "Detect if item definitely contains: " + ", ".join(ALLERGEN_VOCABULARY) + ".",
                    },
                    "dietary_tags": {
                        "type": "ARRAY",
                        "items": {"type": "STRING"},
                        "description": "Tags: " + ", ".join(DIETARY_VOCABULARY) + ".",
                    },
                },
                "required": ["originalName", "translatedName", "price", "category"],
            },
        },
    },
    "required": ["items", "originalCurrency", "exchangeRate", "detectedLanguage"],
}

HANDWRITING_INSTRUCTIONS = """
*** HANDWRITING & CALLIGRAPHY MODE ACTIVATED ***
1. The image contains ARTISTIC FONTS, BRUSH CALLIGRAPHY (Shodo), or HANDWRITTEN text.
2. Text might be arranged VERTICALLY (Tategaki). Read columns from right to left.
3. Contextual Inference: If a character is messy or ambiguous, infer the dish name based on common Izakaya/Street Food menu items.
4. Be permissive: Even if the ink is blurry, try to extract the item.
"""


def build_prompt(image_count: int, target_language: str, target_currency: str,
                 handwriting_mode: bool = False) -> str:
    """Instruction text sent ahead of the menu images."""
    handwriting = HANDWRITING_INSTRUCTIONS if handwriting_mode else ""
    return f"""
Analyze these menu images (Total: {image_count} images).
{handwriting}
CRITICAL OBJECTIVE: EXTRACT EVERY SINGLE MENU ITEM VISIBLE.
1. STRICT OCR & ROBUSTNESS: Extract text EXACTLY as seen, do not autocorrect. Keep the original text verbatim in originalName. If price is missing or illegible, set it to 0.
2. DUAL PRICING / VARIANTS: Handle sizes/add-ons as options of one item, never as duplicate items.
3. OUTPUT FORMAT: Group by category. Translate translatedName to {target_language}. Detect currency. Estimate exchange rate to {target_currency}.
4. DIETARY & ALLERGY: Detect allergens ({", ".join(ALLERGEN_VOCABULARY)}) and dietary tags ({", ".join(DIETARY_VOCABULARY)}).
Return pure JSON adhering to the schema.
"""


# ---------------------------------------------------------------------------
# Response validation
# ---------------------------------------------------------------------------

class ExtractedOption(BaseModel):
    model_config = ConfigDict(extra='ignore')

    name: str
    price: float = 0.0

    @field_validator('price', mode='before')
    @classmethod
    def _missing_price_is_zero(cls, value):
        return 0.0 if value is None else value

    @field_validator('price')
    @classmethod
    def _non_negative(cls, value):
        if value < 0:
            raise ValueError('price must not be negative')
        return value


class ExtractedItem(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    original_name: str = Field(..., alias='originalName', min_length=1)
    translated_name: str = Field(..., alias='translatedName')
    price: float = 0.0
    category: Optional[str] = None
    options: List[ExtractedOption] = Field(default_factory=list)
    short_description: Optional[str] = Field(None, alias='shortDescription')
    allergy_warning: bool = False
    allergens: List[str] = Field(default_factory=list)
    dietary_tags: List[str] = Field(default_factory=list)

    @field_validator('price', mode='before')
    @classmethod
    def _missing_price_is_zero(cls, value):
        # Illegible prices come back empty; they are free items, not errors
        return 0.0 if value is None else value

    @field_validator('price')
    @classmethod
    def _non_negative(cls, value):
        if value < 0:
            raise ValueError('price must not be negative')
        return value

    @field_validator('options', 'allergens', 'dietary_tags', mode='before')
    @classmethod
    def _null_list_is_empty(cls, value):
        return [] if value is None else value


class ExtractedMenu(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    items: List[ExtractedItem]
    original_currency: str = Field(..., alias='originalCurrency', min_length=1)
    # Only an estimate; reconciliation replaces it, a non-positive value is treated as absent
    exchange_rate: Optional[float] = Field(None, alias='exchangeRate')
    detected_language: str = Field('Unknown', alias='detectedLanguage')
    restaurant_name: Optional[str] = Field(None, alias='restaurantName')

    @field_validator('detected_language', mode='before')
    @classmethod
    def _unknown_language(cls, value):
        return value or 'Unknown'

    @field_validator('original_currency')
    @classmethod
    def _upper_code(cls, value):
        return value.strip().upper()
