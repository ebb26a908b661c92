"""Shared fixtures for the transformer test suite."""

from __future__ import annotations

import pytest


@pytest.fixture
def products():
    """Four priced products as a root array."""
    return [
        {"name": "Pen", "price": 10, "category": "office"},
        {"name": "Lamp", "price": 30, "category": "home"},
        {"name": "Stapler", "price": 20, "category": "office"},
        {"name": "Chair", "price": 40, "category": "home"},
    ]


@pytest.fixture
def sales():
    return [
        {"category": "A", "value": 10},
        {"category": "A", "value": 20},
        {"category": "B", "value": 5},
    ]


@pytest.fixture
def weather_document():
    """Object root with two sibling record arrays under /results."""
    return {
        "meta": {"source": "api", "tags": ["a", "b", "c", "d"]},
        "results": {
            "users": [
                {"id": 1, "name": "Ana", "city": "Lisbon"},
                {"id": 2, "name": "Bruno", "city": "Porto"},
                {"id": 3, "name": "Carla", "city": "Braga"},
            ],
            "forecast": [
                {"date": "06/01", "max": 32, "min": 21, "condition": "storm"},
                {"date": "06/02", "max": 30, "min": 20, "condition": "rain"},
                {"date": "06/03", "max": 28, "min": 19, "condition": "sun"},
            ],
        },
    }


@pytest.fixture
def plan_dict():
    """A plan in wire form: select -> filter -> sort -> limit."""
    return {
        "planVersion": "1.0",
        "source": {"recordPath": "/"},
        "steps": [
            {"op": "select", "fields": [{"from": "/name", "as": "name"}, {"from": "/price", "as": "price"}]},
            {"op": "filter", "where": {"op": "gte", "left": {"field": "/price"}, "right": 20}},
            {"op": "sort", "by": "/price", "dir": "asc"},
            {"op": "limit", "n": 2},
        ],
    }
