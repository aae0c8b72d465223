"""
Menu Pal Data Models
Dataclasses shared by the extraction pipeline, the cart and the order history.

All models round-trip through plain dicts using the camelCase keys of the
persisted/wire format, so a history blob written by one release stays
readable by the next.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _require_mapping(data: Any, model: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{model} must be an object, got {type(data).__name__}")
    return data


# ---------------------------------------------------------------------------
# Menu models
# ---------------------------------------------------------------------------

@dataclass
class MenuOption:
    """A priced variant (size / add-on) attached to a menu item."""
    name: str
    price: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "price": self.price}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MenuOption":
        data = _require_mapping(data, "MenuOption")
        return cls(name=str(data.get("name", "")), price=float(data.get("price") or 0.0))


@dataclass
class MenuItem:
    """A single dish as extracted from the menu, priced in the menu currency."""
    id: str
    original_name: str
    translated_name: str
    price: float = 0.0
    category: Optional[str] = None
    options: List[MenuOption] = field(default_factory=list)
    short_description: Optional[str] = None
    allergy_warning: bool = False
    allergens: List[str] = field(default_factory=list)
    dietary_tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "originalName": self.original_name,
            "translatedName": self.translated_name,
            "price": self.price,
            "category": self.category,
            "options": [o.to_dict() for o in self.options],
            "allergy_warning": self.allergy_warning,
            "allergens": list(self.allergens),
            "dietary_tags": list(self.dietary_tags),
        }
        if self.short_description is not None:
            data["shortDescription"] = self.short_description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MenuItem":
        data = _require_mapping(data, "MenuItem")
        return cls(
            id=str(data["id"]),
            original_name=str(data.get("originalName", "")),
            translated_name=str(data.get("translatedName", "")),
            price=float(data.get("price") or 0.0),
            category=data.get("category"),
            options=[MenuOption.from_dict(o) for o in data.get("options") or []],
            short_description=data.get("shortDescription"),
            allergy_warning=bool(data.get("allergy_warning", False)),
            allergens=list(data.get("allergens") or []),
            dietary_tags=list(data.get("dietary_tags") or []),
        )


@dataclass
class TokenUsage:
    """Token accounting reported by the extraction service."""
    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokenCount": self.prompt_token_count,
            "candidatesTokenCount": self.candidates_token_count,
            "totalTokenCount": self.total_token_count,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["TokenUsage"]:
        if not data:
            return None
        data = _require_mapping(data, "TokenUsage")
        return cls(
            prompt_token_count=int(data.get("promptTokenCount") or 0),
            candidates_token_count=int(data.get("candidatesTokenCount") or 0),
            total_token_count=int(data.get("totalTokenCount") or 0),
        )


@dataclass
class MenuData:
    """
    One extraction result.

    exchange_rate means: 1 unit of original_currency = exchange_rate units
    of target_currency.
    """
    items: List[MenuItem]
    original_currency: str
    target_currency: str
    exchange_rate: float
    detected_language: str
    restaurant_name: Optional[str] = None
    usage_metadata: Optional[TokenUsage] = None

    def find_item(self, item_id: str) -> Optional[MenuItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [i.to_dict() for i in self.items],
            "originalCurrency": self.original_currency,
            "targetCurrency": self.target_currency,
            "exchangeRate": self.exchange_rate,
            "detectedLanguage": self.detected_language,
            "restaurantName": self.restaurant_name,
            "usageMetadata": self.usage_metadata.to_dict() if self.usage_metadata else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MenuData":
        data = _require_mapping(data, "MenuData")
        return cls(
            items=[MenuItem.from_dict(i) for i in data.get("items") or []],
            original_currency=str(data["originalCurrency"]),
            target_currency=str(data["targetCurrency"]),
            exchange_rate=float(data["exchangeRate"]),
            detected_language=str(data.get("detectedLanguage", "Unknown")),
            restaurant_name=data.get("restaurantName"),
            usage_metadata=TokenUsage.from_dict(data.get("usageMetadata")),
        )


# ---------------------------------------------------------------------------
# Order models
# ---------------------------------------------------------------------------

@dataclass
class CartItem:
    """A menu item copied by value into the cart, with its chosen quantity."""
    item: MenuItem
    quantity: int

    def to_dict(self) -> Dict[str, Any]:
        return {"item": self.item.to_dict(), "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartItem":
        data = _require_mapping(data, "CartItem")
        return cls(item=MenuItem.from_dict(data["item"]), quantity=int(data["quantity"]))


@dataclass
class GeoLocation:
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["GeoLocation"]:
        if not data:
            return None
        data = _require_mapping(data, "GeoLocation")
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))


@dataclass
class HistoryRecord:
    """A finished order. Never edited after creation, only deleted whole."""
    id: str
    timestamp: int  # epoch milliseconds
    items: List[CartItem]
    total_original_price: float
    currency: str
    restaurant_name: Optional[str] = None
    paid_by: Optional[str] = None
    location: Optional[GeoLocation] = None
    tax_rate: Optional[float] = None
    service_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "items": [c.to_dict() for c in self.items],
            "totalOriginalPrice": self.total_original_price,
            "currency": self.currency,
            "restaurantName": self.restaurant_name,
            "paidBy": self.paid_by,
            "location": self.location.to_dict() if self.location else None,
            "taxRate": self.tax_rate,
            "serviceRate": self.service_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        data = _require_mapping(data, "HistoryRecord")
        return cls(
            id=str(data["id"]),
            timestamp=int(data["timestamp"]),
            items=[CartItem.from_dict(c) for c in data.get("items") or []],
            total_original_price=float(data.get("totalOriginalPrice") or 0.0),
            currency=str(data.get("currency", "")),
            restaurant_name=data.get("restaurantName"),
            paid_by=data.get("paidBy"),
            location=GeoLocation.from_dict(data.get("location")),
            tax_rate=data.get("taxRate"),
            service_rate=data.get("serviceRate"),
        )
