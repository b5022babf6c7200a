# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for simstudy."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class SimstudyBaseModel(BaseModel):
    """Base model with shared config for simstudy schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
    )


class FrozenModel(BaseModel):
    """Immutable schema that rejects unknown fields."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid",
        frozen=True,
        protected_namespaces=(),
    )


class ExtraAllowModel(BaseModel):
    """Base model that preserves extra fields for flexible schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="allow",
        populate_by_name=True,
    )
