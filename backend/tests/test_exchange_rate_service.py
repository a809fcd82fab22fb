from decimal import Decimal

import httpx
import pytest

from backoffice.errors import ValidationError
from backoffice.services import exchange_rate_service


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def _rates_response(request):
    assert request.url.path.endswith("/EUR")
    return httpx.Response(200, json={"base_code": "EUR", "rates": {"EUR": 1, "USD": 1.08, "GBP": 0.85}})


class TestExchangeRates:
    def test_rates_are_decimals(self, db_session):
        rates = exchange_rate_service.get_exchange_rates("EUR", client=_client(_rates_response))
        assert rates["USD"] == Decimal("1.08")
        assert isinstance(rates["GBP"], Decimal)
        assert rates["EUR"] == Decimal("1")

    def test_fresh_rates_are_served_from_cache(self, db_session):
        calls = []

        def handler(request):
            calls.append(request)
            return _rates_response(request)

        exchange_rate_service.get_exchange_rates("EUR", client=_client(handler))
        exchange_rate_service.get_exchange_rates("EUR", client=_client(handler))
        assert len(calls) == 1

    def test_stale_rates_survive_failed_refresh(self, app, db_session, monkeypatch, caplog):
        exchange_rate_service.get_exchange_rates("EUR", client=_client(_rates_response))
        monkeypatch.setitem(app.config, "EXCHANGE_RATE_TTL_SECONDS", 0)

        def broken(request):
            return httpx.Response(503)

        rates = exchange_rate_service.get_exchange_rates("EUR", client=_client(broken))
        assert rates["USD"] == Decimal("1.08")
        assert "serving stale rates" in caplog.text

    def test_first_fetch_failure_knows_only_base(self, db_session):
        def broken(request):
            raise httpx.ConnectError("down", request=request)

        rates = exchange_rate_service.get_exchange_rates("EUR", client=_client(broken))
        assert rates == {"EUR": Decimal("1")}

    def test_malformed_payload_is_a_failure(self, db_session):
        def bad(request):
            return httpx.Response(200, json={"result": "error"})

        assert exchange_rate_service.get_exchange_rates("EUR", client=_client(bad)) == {"EUR": Decimal("1")}


class TestConvertToBase:
    def test_base_currency_is_identity(self, db_session):
        amount, rate = exchange_rate_service.convert_to_base(Decimal("8.56"), "eur", "EUR")
        assert amount == Decimal("8.56")
        assert rate == Decimal("1")

    def test_conversion_rounds_to_cents(self, db_session):
        exchange_rate_service.get_exchange_rates("EUR", client=_client(_rates_response))
        amount, rate = exchange_rate_service.convert_to_base(Decimal("10.00"), "USD", "EUR")
        assert rate == Decimal("1.08")
        assert amount == Decimal("9.26")

    def test_unknown_currency(self, db_session):
        exchange_rate_service.get_exchange_rates("EUR", client=_client(_rates_response))
        with pytest.raises(ValidationError):
            exchange_rate_service.convert_to_base(Decimal("1"), "JPY", "EUR")
