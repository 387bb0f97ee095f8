# src/arcweaver/models/base_model.py
"""Shared Pydantic base model with tolerant enum handling."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class ArcweaverBaseModel(BaseModel):
    """Base model that accepts enum names or values in any letter case."""

    # Ignore unexpected keys from LLMs instead of failing validation.
    model_config = ConfigDict(
        from_attributes=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _coerce_enums(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        for field_name, info in cls.model_fields.items():
            field_type = info.annotation
            if not (isinstance(field_type, type) and issubclass(field_type, Enum)):
                continue
            key = info.alias if info.alias and info.alias in data else field_name
            value = data.get(key)
            if not isinstance(value, str):
                continue
            needle = value.strip().lower()
            for member in field_type:
                if needle in {member.name.lower(), str(member.value).lower()}:
                    data = {**data, key: member}
                    break
        return data


__all__ = ["ArcweaverBaseModel"]
