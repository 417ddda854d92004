"""Pydantic models for the GitHub contents listing."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, TypeAdapter


class ContentItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    type: str
    download_url: str | None = None


ContentListing = TypeAdapter(list[ContentItem])
