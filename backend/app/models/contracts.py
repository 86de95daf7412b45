"""YardSketch contract models.

Wire format is camelCase (``climateZone``, ``materialsList``); Python code
uses snake_case. Models accept either form on input.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

SunExposure = Literal["full-sun", "partial-sun", "shade"]
DesignStyle = Literal["modern", "traditional", "cottage", "tropical", "desert", "woodland"]
MaterialCategory = Literal["plants", "hardscape", "mulch", "other"]
ProjectStatus = Literal["draft", "completed", "archived"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Inputs ===


class DesignParams(_CamelModel):
    """Site parameters supplied with the property photo."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    climate_zone: str = Field(min_length=1, max_length=50)
    sun_exposure: SunExposure = "full-sun"
    square_footage: int = Field(gt=0)
    design_style: DesignStyle = "modern"
    budget: float | None = Field(default=None, ge=0)
    notes: str = Field(default="", max_length=2000)


# === Materials ===


class MaterialLineItem(_CamelModel):
    model_config = ConfigDict(frozen=True)

    name: str
    quantity: str  # descriptive ("2 cubic yards"), never multiplied
    unit_price: float = Field(ge=0)
    total_price: float = Field(ge=0)
    category: MaterialCategory


class MaterialEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[MaterialLineItem]
    total: float


# === Generation ===


class GenerationResult(BaseModel):
    """Narrative plus transient image references, consumed within one request."""

    design_thesis: str
    generated_images: list[str] = []
    image_analysis: str | None = None  # None unless the image-aware path ran


# === Project ===


class Project(_CamelModel):
    id: str
    owner_id: str
    status: ProjectStatus = "draft"

    name: str
    climate_zone: str
    sun_exposure: SunExposure
    square_footage: int
    design_style: DesignStyle
    budget: float | None = None
    notes: str = ""

    original_image: str | None = None
    design_thesis: str | None = None
    generated_images: list[str] | None = None
    materials_list: list[MaterialLineItem] | None = None
    total_cost: float | None = None
    image_analysis: str | None = None

    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def description(self) -> str:
        return self.notes


class ProjectCompletion(BaseModel):
    """Every field written by the single draft -> completed transition."""

    design_thesis: str
    generated_images: list[str]
    materials_list: list[MaterialLineItem]
    total_cost: float
    image_analysis: str | None = None

    @model_validator(mode="after")
    def _total_matches_items(self) -> ProjectCompletion:
        expected = sum(item.total_price for item in self.materials_list)
        if not math.isclose(self.total_cost, expected, abs_tol=1e-9):
            raise ValueError(f"total_cost {self.total_cost} != sum of line items {expected}")
        return self


# === API ===


class ProjectListResponse(_CamelModel):
    projects: list[Project]


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    detail: str | None = None
