# donation_carbon/snapshot.py
# ---------------------------------------------------------
# Read-only input shapes for the allocation engine.
#
# crud.load_snapshot() fills these from the database in a
# handful of batched queries; the engine itself never touches
# a Session. Tests build them by hand.
# ---------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class DonationRow:
    id: int
    donated_weight_kg: float
    dish_id: Optional[int] = None
    component_id: Optional[int] = None
    kitchen_id: Optional[str] = None


@dataclass(frozen=True)
class ComponentRow:
    id: int
    dish_id: Optional[int]
    name_raw: Optional[str]
    plate_share: Optional[float] = None   # 0..1
    component_type: Optional[str] = None


@dataclass(frozen=True)
class IngredientRow:
    component_id: int
    ingredient_core: str
    share_of_component: Optional[float] = None  # 0..100
    is_water: bool = False
    is_salt: bool = False
    base_name: Optional[str] = None
    seq_no: Optional[int] = None

    @property
    def label(self) -> str:
        return (self.base_name or "").strip() or self.ingredient_core


@dataclass(frozen=True)
class MappingRow:
    ingredient_core: str
    weight_state: Optional[str]           # ignore | cooked | raw
    reference_food_id: Optional[int] = None
    yield_cooked_per_raw: Optional[float] = None   # cooked_kg / raw_kg
    co2_override_per_kg: Optional[float] = None
    match_type: Optional[str] = None


@dataclass(frozen=True)
class ReferenceFoodRow:
    food_id: int
    kg_co2e_per_kg: Optional[float] = None
    g_co2e_per_100g: Optional[float] = None
    name_fi: Optional[str] = None
    name_en: Optional[str] = None


@dataclass(frozen=True)
class DonationSnapshot:
    """
    Everything one donation computation reads.

    components: ordered; for a component-targeted donation this
                holds exactly the targeted component.
    ingredients: component_id -> ordered ingredient rows
    mappings: ingredient_core -> ACTIVE mapping in `source_system`
    foods: reference food id -> row
    """

    donation: DonationRow
    source_system: str
    components: list[ComponentRow] = field(default_factory=list)
    ingredients: dict[int, list[IngredientRow]] = field(default_factory=dict)
    mappings: dict[str, MappingRow] = field(default_factory=dict)
    foods: dict[int, ReferenceFoodRow] = field(default_factory=dict)

    def component(self, component_id: int) -> Optional[ComponentRow]:
        for c in self.components:
            if c.id == component_id:
                return c
        return None

    def ingredients_for(self, component_id: int) -> list[IngredientRow]:
        return self.ingredients.get(component_id, [])

    def food_for(self, mapping: Optional[MappingRow]) -> Optional[ReferenceFoodRow]:
        if mapping is None or mapping.reference_food_id is None:
            return None
        return self.foods.get(mapping.reference_food_id)
