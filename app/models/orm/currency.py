from sqlalchemy import Column, String, Numeric, DateTime
from datetime import datetime

from .base import Base


class CurrencyRateORM(Base):
    __tablename__ = "currency_rates"

    currency_code = Column(String(3), primary_key=True)

    # price_in_currency = price_usd / rate_to_usd (USD itself is 1.0)
    rate_to_usd = Column(Numeric(10, 6), nullable=False)

    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CurrencyPreferenceORM(Base):
    __tablename__ = "user_currency_preferences"

    user_id = Column(String, primary_key=True)
    currency_code = Column(String(3), nullable=False, default="USD")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
