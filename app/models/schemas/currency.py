from datetime import datetime
from typing import List
from pydantic import BaseModel, ConfigDict, Field


class CurrencyRateModel(BaseModel):
    currency_code: str
    rate_to_usd: float
    last_updated: datetime

    model_config = ConfigDict(from_attributes=True)


class CurrencyRateListModel(BaseModel):
    rates: List[CurrencyRateModel]


class CurrencyRateUpdateModel(BaseModel):
    rate_to_usd: float = Field(..., gt=0.0)


class CurrencyPreferenceModel(BaseModel):
    currency: str = Field(..., min_length=3, max_length=3)


class PriceQuoteModel(BaseModel):
    amount: int = Field(..., description="Price in minor units of the target currency")
    currency: str
    formatted: str
