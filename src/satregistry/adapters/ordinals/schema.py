"""Pydantic models for ord server JSON responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OrdBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class InscriptionInfo(OrdBaseModel):
    inscription_id: str | None = Field(default=None, alias="id")
    sat: int | None = None
    height: int | None = None
    number: int | None = None


class SatInscriptionsPage(OrdBaseModel):
    ids: list[str] = Field(default_factory=list)
    more: bool = False
    page: int = 0
