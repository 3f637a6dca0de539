# services/currency_service.py
import logging

from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.core.settings import config_settings
from app.models.orm.currency import CurrencyPreferenceORM, CurrencyRateORM
from app.models.schemas.currency import PriceQuoteModel
from app.repositories.currency_repo import CurrencyRepository
from app.services.currency_converter import DEFAULT_RATES, CurrencyConverter

logger = logging.getLogger(__name__)


class CurrencyService:
    def __init__(self, db: Session, converter: CurrencyConverter | None = None):
        self.currency_repo = CurrencyRepository(db)
        self.converter = converter or CurrencyConverter(
            base_currency=config_settings.BASE_CURRENCY
        )

    def _supported_code(self, currency: str) -> str:
        code = currency.strip().upper()
        if not self.converter.is_supported(code):
            raise ValidationError(f"Unsupported currency: {currency}")
        return code

    def list_rates(self) -> list[CurrencyRateORM]:
        return self.currency_repo.list_rates()

    def update_rate(self, currency: str, rate_to_usd: float) -> CurrencyRateORM:
        code = self._supported_code(currency)
        if rate_to_usd <= 0:
            raise ValidationError("rate_to_usd must be positive")

        rate = self.currency_repo.upsert_rate(code, rate_to_usd)
        logger.info("Updated %s rate to %s", code, rate_to_usd)
        return rate

    def seed_default_rates(self) -> int:
        added = self.currency_repo.seed_rates(DEFAULT_RATES)
        if added:
            logger.info("Seeded %d default currency rates", added)
        return added

    def get_preference(self, user_id: str) -> str:
        preference = self.currency_repo.get_preference(user_id)
        if preference is None:
            return self.converter.base_currency
        return preference.currency_code

    def set_preference(self, user_id: str, currency: str) -> CurrencyPreferenceORM:
        code = self._supported_code(currency)
        return self.currency_repo.set_preference(user_id, code)

    def quote_price(self, amount_minor_units: int, currency: str) -> PriceQuoteModel:
        """
        Converts a base-currency price with the stored rates and formats it.

        Without a stored rate the quote stays in the base currency.
        """
        code = self._supported_code(currency)
        rates = self.currency_repo.list_rates()
        if code not in {rate.currency_code for rate in rates}:
            code = self.converter.base_currency

        amount = self.converter.convert_price(amount_minor_units, code, rates)
        return PriceQuoteModel(
            amount=amount,
            currency=code,
            formatted=self.converter.format_price(amount, code),
        )
