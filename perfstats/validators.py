"""Pydantic validation models for records entering the analysis core."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TestRecordInput(BaseModel):
    __test__ = False  # not a pytest test class

    record_id: str = ""
    athlete_id: str = Field(min_length=1, max_length=120)
    test_type: str = Field(min_length=1, max_length=80)
    timestamp: datetime
    score: Optional[float] = None
    metrics: dict[str, float] = Field(default_factory=dict)
    quality_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("athlete_id", "test_type")
    @classmethod
    def strip_identifiers(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("identifier must not be blank")
        return v

    @field_validator("score")
    @classmethod
    def finite_score(cls, v):
        if v is not None and not math.isfinite(v):
            raise ValueError("score must be a finite number")
        return v

    @field_validator("metrics")
    @classmethod
    def finite_metrics(cls, v):
        bad = sorted(k for k, value in v.items() if not math.isfinite(value))
        if bad:
            raise ValueError(f"metrics must be finite numbers: {', '.join(bad)}")
        return v


class AthleteProfileInput(BaseModel):
    athlete_id: str = Field(min_length=1, max_length=120)
    sex: str = "male"
    age: Optional[int] = Field(default=None, ge=5, le=100)
    body_mass_kg: Optional[float] = Field(default=None, gt=20.0, le=250.0)

    @field_validator("sex")
    @classmethod
    def valid_sex(cls, v):
        token = v.strip().lower()
        aliases = {"m": "male", "male": "male", "f": "female", "female": "female"}
        if token not in aliases:
            raise ValueError("sex must be one of {'male', 'female'}")
        return aliases[token]
