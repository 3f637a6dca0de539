from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.orm.currency import CurrencyPreferenceORM, CurrencyRateORM


class CurrencyRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_rates(self) -> list[CurrencyRateORM]:
        stmt = select(CurrencyRateORM).order_by(CurrencyRateORM.currency_code)
        return list(self.db.scalars(stmt).all())

    def get_rate(self, currency_code: str) -> Optional[CurrencyRateORM]:
        return self.db.get(CurrencyRateORM, currency_code)

    def upsert_rate(self, currency_code: str, rate_to_usd: float) -> CurrencyRateORM:
        rate = self.get_rate(currency_code)
        if rate is None:
            rate = CurrencyRateORM(currency_code=currency_code)
            self.db.add(rate)

        rate.rate_to_usd = Decimal(str(rate_to_usd))
        rate.last_updated = datetime.utcnow()

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(rate)
        return rate

    def seed_rates(self, defaults: Mapping[str, str]) -> int:
        """Inserts ``defaults`` when the rates table is empty. Returns rows added."""
        count = self.db.scalar(select(func.count()).select_from(CurrencyRateORM))
        if count:
            return 0

        for code, rate in defaults.items():
            self.db.add(CurrencyRateORM(currency_code=code, rate_to_usd=Decimal(rate)))

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return len(defaults)

    def get_preference(self, user_id: str) -> Optional[CurrencyPreferenceORM]:
        return self.db.get(CurrencyPreferenceORM, user_id)

    def set_preference(self, user_id: str, currency_code: str) -> CurrencyPreferenceORM:
        preference = self.get_preference(user_id)
        if preference is None:
            preference = CurrencyPreferenceORM(user_id=user_id)
            self.db.add(preference)

        preference.currency_code = currency_code

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(preference)
        return preference
