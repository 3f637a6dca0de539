import pytest

from app.services.currency_service import CurrencyService


@pytest.fixture
def seeded(db):
    assert CurrencyService(db).seed_default_rates() == 8


def test_seed_is_noop_when_rates_exist(db, seeded):
    assert CurrencyService(db).seed_default_rates() == 0


def test_list_rates(client, seeded):
    response = client.get("/currency/rates")

    assert response.status_code == 200
    rates = {r["currency_code"]: r["rate_to_usd"] for r in response.json()["rates"]}
    assert rates["USD"] == 1
    assert rates["EUR"] == pytest.approx(0.92)
    assert len(rates) == 8


def test_quote_converts_and_formats(client, seeded):
    response = client.get("/currency/quote", params={"amount": 10000, "currency": "EUR"})

    assert response.status_code == 200
    assert response.json() == {"amount": 10869, "currency": "EUR", "formatted": "€108.69"}


def test_quote_jpy(client, seeded):
    body = client.get("/currency/quote", params={"amount": 10000, "currency": "jpy"}).json()
    assert body == {"amount": 67, "currency": "JPY", "formatted": "¥0"}


def test_quote_without_rate_stays_in_base_currency(client):
    body = client.get("/currency/quote", params={"amount": 2500, "currency": "GBP"}).json()
    assert body == {"amount": 2500, "currency": "USD", "formatted": "$25.00"}


def test_quote_rejects_unsupported_currency(client, seeded):
    response = client.get("/currency/quote", params={"amount": 100, "currency": "XYZ"})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_update_rate(client, seeded):
    response = client.put("/currency/rates/eur", json={"rate_to_usd": 0.5})

    assert response.status_code == 200
    assert response.json()["currency_code"] == "EUR"
    quote = client.get("/currency/quote", params={"amount": 1000, "currency": "EUR"}).json()
    assert quote["amount"] == 2000


def test_update_rate_must_be_positive(client, seeded):
    assert client.put("/currency/rates/EUR", json={"rate_to_usd": 0}).status_code == 400


def test_preference_defaults_to_base_currency(client):
    response = client.get("/currency/preference", headers={"X-User-Id": "user-1"})

    assert response.status_code == 200
    assert response.json() == {"currency": "USD"}


def test_preference_round_trip(client):
    headers = {"X-User-Id": "user-1"}

    saved = client.post("/currency/preference", json={"currency": "eur"}, headers=headers)
    assert saved.status_code == 200
    assert saved.json() == {"currency": "EUR"}

    assert client.get("/currency/preference", headers=headers).json() == {"currency": "EUR"}
    assert client.get("/currency/preference", headers={"X-User-Id": "user-2"}).json() == {
        "currency": "USD"
    }


def test_preference_requires_signed_in_user(client):
    assert client.get("/currency/preference").status_code == 401


def test_preference_rejects_unsupported_currency(client):
    response = client.post(
        "/currency/preference", json={"currency": "XYZ"}, headers={"X-User-Id": "user-1"}
    )
    assert response.status_code == 400


def test_requires_bearer_token(client):
    response = client.get("/currency/rates", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401
