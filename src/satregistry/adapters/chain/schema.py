"""Pydantic models describing chain provider payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ChainBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EsploraTxStatus(ChainBaseModel):
    confirmed: bool = False
    block_height: int | None = None
    block_hash: str | None = None


class EsploraTransaction(ChainBaseModel):
    txid: str
    status: EsploraTxStatus = Field(default_factory=EsploraTxStatus)


EsploraTxids = TypeAdapter(list[str])


class BlockchairBlock(ChainBaseModel):
    transactions: list[str]


class BlockchairBlockResponse(ChainBaseModel):
    data: dict[str, BlockchairBlock]


class BlockchainInfoTx(ChainBaseModel):
    hash: str


class BlockchainInfoBlock(ChainBaseModel):
    hash: str | None = None
    tx: list[BlockchainInfoTx]


class TokenResponse(ChainBaseModel):
    access_token: str
    expires_in: float = 300.0
    token_type: str = "Bearer"

    @field_validator("access_token")
    @classmethod
    def _require_token(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("empty access token")
        return value.strip()
