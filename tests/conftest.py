import os

# Engine in donation_carbon.db is created at import time; never point it at postgres
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import donation_carbon.models  # noqa: F401
from donation_carbon.db import Base, get_db
from donation_carbon.models import (
    ComponentIngredient,
    Dish,
    DishComponent,
    Donation,
    IngredientMapping,
    ReferenceFood,
)
from donation_carbon.routes import router


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Seeder:
    """Small builders for the composition tree. Every call flushes."""

    def __init__(self, db):
        self.db = db

    def _add(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def food(self, food_id, kg=None, g100=None, name_en=None):
        return self._add(
            ReferenceFood(
                food_id=food_id,
                kg_co2e_per_kg=kg,
                g_co2e_per_100g=g100,
                name_en=name_en or f"food {food_id}",
            )
        )

    def dish(self, restaurant_id="K1", title_fi="Testiruoka"):
        return self._add(Dish(restaurant_id=restaurant_id, title_fi=title_fi))

    def component(self, dish, name_raw, plate_share=None):
        return self._add(DishComponent(dish_id=dish.id, name_raw=name_raw, plate_share=plate_share))

    def ingredient(self, component, core, share=None, seq_no=None, is_water=False, is_salt=False, base_name=None):
        return self._add(
            ComponentIngredient(
                component_id=component.id,
                ingredient_core=core,
                share_of_component=share,
                seq_no=seq_no,
                is_water=is_water,
                is_salt=is_salt,
                base_name=base_name,
            )
        )

    def mapping(
        self,
        core,
        food_id=None,
        weight_state="cooked",
        source_system="SODEXO",
        yield_cooked_per_raw=None,
        co2_override_per_kg=None,
        is_active=True,
    ):
        return self._add(
            IngredientMapping(
                source_system=source_system,
                ingredient_core=core,
                reference_food_id=food_id,
                weight_state=weight_state,
                yield_cooked_per_raw=yield_cooked_per_raw,
                co2_override_per_kg=co2_override_per_kg,
                is_active=is_active,
            )
        )

    def donation(self, weight, dish=None, component=None, kitchen_id="K1", donated_at=None):
        return self._add(
            Donation(
                kitchen_id=kitchen_id,
                dish_id=dish.id if dish is not None else None,
                component_id=component.id if component is not None else None,
                donated_weight_kg=weight,
                donated_at=donated_at or datetime(2026, 3, 2, 12, 0),
            )
        )


@pytest.fixture()
def seed(db):
    return Seeder(db)


@pytest.fixture()
def curry(seed, db):
    """
    Dish with two components (plate_share 0.6 / 0.4):
      - "Broilericurry": one ingredient BROILERI at 100 %, factor 1.5 cooked
      - "Vihreä salaatti": no ingredient rows, no name mapping
    """
    seed.food(10, kg=1.5, name_en="Chicken, cooked")
    dish = seed.dish()
    a = seed.component(dish, "Broilericurry", plate_share=0.6)
    b = seed.component(dish, "Vihreä salaatti", plate_share=0.4)
    seed.ingredient(a, "BROILERI", share=100, seq_no=1, base_name="broileri")
    seed.mapping("BROILERI", food_id=10)
    db.commit()
    return dish, a, b


@pytest.fixture()
def client(session_factory):
    app = FastAPI()
    app.include_router(router)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
