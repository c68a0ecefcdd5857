from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from freshops.errors import ValidationError

UNIT_KG = "kg"
UNIT_PC = "pc"
UNITS = (UNIT_KG, UNIT_PC)

CLIENT_RESTAURANT = "restaurant"
CLIENT_SUPERMARKET = "supermarket"
CLIENT_TYPES = (CLIENT_RESTAURANT, CLIENT_SUPERMARKET)

DEFAULT_CREDIT_DAYS = 30
DEFAULT_SHELF_LIFE_DAYS = 7

DEFAULT_OVERHEAD_PCT = 15.0
DEFAULT_LABOR_PCT = 0.0


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    unit: str = UNIT_KG
    cost_per_unit: float = 0.0
    shelf_life_days: int = DEFAULT_SHELF_LIFE_DAYS
    name_local: Optional[str] = None

    @property
    def is_kg(self) -> bool:
        return self.unit == UNIT_KG

    @classmethod
    def from_row(cls, r) -> "Product":
        return cls(
            id=int(r["id"]),
            name=str(r["name"]),
            unit=str(r["unit"]),
            cost_per_unit=float(r["cost_per_unit"] or 0),
            shelf_life_days=int(r["shelf_life_days"] or DEFAULT_SHELF_LIFE_DAYS),
            name_local=r["name_local"],
        )


@dataclass(frozen=True)
class Client:
    id: int
    name: str
    type: str = CLIENT_RESTAURANT
    phone: Optional[str] = None
    credit_days: Optional[int] = DEFAULT_CREDIT_DAYS
    name_local: Optional[str] = None

    @property
    def is_supermarket(self) -> bool:
        return self.type == CLIENT_SUPERMARKET

    @property
    def effective_credit_days(self) -> int:
        return DEFAULT_CREDIT_DAYS if self.credit_days is None else int(self.credit_days)

    @classmethod
    def from_row(cls, r) -> "Client":
        cd = r["credit_days"]
        return cls(
            id=int(r["id"]),
            name=str(r["name"]),
            type=str(r["type"]),
            phone=r["phone"],
            credit_days=None if cd is None else int(cd),
            name_local=r["name_local"],
        )


@dataclass(frozen=True)
class PricingSettings:
    """Global cost loaders applied on top of every product's base cost."""

    overhead_pct: float = DEFAULT_OVERHEAD_PCT
    labor_pct: float = DEFAULT_LABOR_PCT

    def __post_init__(self):
        if float(self.overhead_pct) < 0 or float(self.labor_pct) < 0:
            raise ValidationError("Overhead and labor percentages must be >= 0.")

    @property
    def loader(self) -> float:
        return 1 + float(self.overhead_pct) / 100 + float(self.labor_pct) / 100

    def to_dict(self) -> dict:
        return {"overhead_pct": float(self.overhead_pct), "labor_pct": float(self.labor_pct)}

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> "PricingSettings":
        d = d or {}
        return cls(
            overhead_pct=float(d.get("overhead_pct", DEFAULT_OVERHEAD_PCT) or 0),
            labor_pct=float(d.get("labor_pct", DEFAULT_LABOR_PCT) or 0),
        )


@dataclass(frozen=True)
class WeightVariant:
    weight: float  # pack size in kg
    price: float   # pack price

    def to_dict(self) -> dict:
        return {"weight": float(self.weight), "price": float(self.price)}

    @classmethod
    def from_dict(cls, d: dict) -> "WeightVariant":
        return cls(weight=float(d.get("weight", 0) or 0), price=float(d.get("price", 0) or 0))
