"""
Subscription catalog: category -> subcategory -> ordered plans with fixed prices.

Loaded from a YAML file and validated with pydantic. All lookups are exact.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "catalog.yaml"


class Plan(BaseModel):
    code: str = Field(..., min_length=1, max_length=32, pattern=r"^[a-z0-9-]+$")
    name: str
    price: int = Field(..., ge=0)


class Subcategory(BaseModel):
    name: str
    plans: list[Plan] = Field(default_factory=list)


class Category(BaseModel):
    name: str
    subcategories: list[Subcategory] = Field(default_factory=list)


class Catalog(BaseModel):
    categories: list[Category] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_plan_codes(self) -> "Catalog":
        seen: set[str] = set()
        for category in self.categories:
            for sub in category.subcategories:
                for plan in sub.plans:
                    if plan.code in seen:
                        raise ValueError(f"Duplicate plan code: {plan.code}")
                    seen.add(plan.code)
        return self

    # --- lookups ---

    def category_names(self) -> list[str]:
        return [c.name for c in self.categories]

    def category(self, index: int) -> Optional[Category]:
        if 0 <= index < len(self.categories):
            return self.categories[index]
        return None

    def category_index(self, name: str) -> Optional[int]:
        for i, c in enumerate(self.categories):
            if c.name == name:
                return i
        return None

    def subcategory(self, category: str, index: int) -> Optional[Subcategory]:
        idx = self.category_index(category)
        if idx is None:
            return None
        subs = self.categories[idx].subcategories
        if 0 <= index < len(subs):
            return subs[index]
        return None

    def subcategory_index(self, category: str, name: str) -> Optional[int]:
        idx = self.category_index(category)
        if idx is None:
            return None
        for i, sub in enumerate(self.categories[idx].subcategories):
            if sub.name == name:
                return i
        return None

    def plans_for(self, category: str, subcategory: str) -> list[Plan]:
        idx = self.category_index(category)
        if idx is None:
            return []
        for sub in self.categories[idx].subcategories:
            if sub.name == subcategory:
                return list(sub.plans)
        return []

    def plan(self, category: str, subcategory: str, code: str) -> Optional[Plan]:
        for plan in self.plans_for(category, subcategory):
            if plan.code == code:
                return plan
        return None


def load_catalog(path: str | Path) -> Catalog:
    """Load and validate the catalog from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return Catalog.model_validate(raw)


@lru_cache
def get_catalog() -> Catalog:
    return load_catalog(DEFAULT_CATALOG_PATH)
