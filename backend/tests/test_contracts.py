"""Contract model tests: wire aliases, defaults, and bounds."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from app.models.contracts import DesignParams, MaterialLineItem, Project
from tests.fakes import PARAMS


class TestDesignParams:
    def test_accepts_camel_case(self):
        params = DesignParams.model_validate(PARAMS)
        assert params.climate_zone == "9b"
        assert params.square_footage == 800

    def test_accepts_snake_case(self):
        params = DesignParams(name="x", climate_zone="5", square_footage=1)
        assert params.sun_exposure == "full-sun"
        assert params.design_style == "modern"
        assert params.budget is None
        assert params.notes == ""

    @pytest.mark.parametrize(
        "override",
        [
            {"name": ""},
            {"squareFootage": -5},
            {"budget": -1},
            {"designStyle": "baroque"},
            {"notes": "x" * 2001},
        ],
    )
    def test_rejects_bad_values(self, override):
        with pytest.raises(ValidationError):
            DesignParams.model_validate({**PARAMS, **override})


class TestMaterialLineItem:
    def test_frozen(self):
        item = MaterialLineItem(
            name="Mulch", quantity="2 cubic yards", unit_price=3, total_price=3, category="other"
        )
        with pytest.raises(ValidationError):
            item.unit_price = 5

    def test_serialises_camel_case(self):
        item = MaterialLineItem(
            name="Mulch", quantity="2 cubic yards", unit_price=3, total_price=3, category="other"
        )
        assert item.model_dump(by_alias=True) == {
            "name": "Mulch",
            "quantity": "2 cubic yards",
            "unitPrice": 3,
            "totalPrice": 3,
            "category": "other",
        }


class TestProject:
    def test_description_mirrors_notes(self):
        now = datetime.now(UTC)
        project = Project(
            id="p",
            owner_id="u",
            name="n",
            climate_zone="5",
            sun_exposure="shade",
            square_footage=1,
            design_style="tropical",
            notes="Keep the oak",
            created_at=now,
            updated_at=now,
        )
        body = project.model_dump(by_alias=True, mode="json")
        assert body["description"] == "Keep the oak"
        assert body["ownerId"] == "u"
        assert body["status"] == "draft"
        assert body["materialsList"] is None
