"""Tests for the SBanken integration."""

import json
from datetime import date, timedelta

import httpx
import pytest

import psd2.sdk as psd2
from psd2.sdk.banks.sbanken import (
    SBanken,
    SBankenAccountsError,
    SBankenCustomerError,
    SBankenEInvoiceError,
    SBankenTransactionsError,
    SBankenTransferError,
)
from psd2.sdk.batch import QueuedRequest
from psd2.sdk.exceptions import ConfigurationError

CUSTOMER = "01020312345"


class FakeSBanken:
    def __init__(self):
        self.requests = []
        self.responses = {}
        self.token_calls = 0

    def handler(self, request):
        self.requests.append(request)
        if request.url.host == "auth.sbanken.no":
            self.token_calls += 1
            return httpx.Response(
                200,
                json={"access_token": f"sb-{self.token_calls}", "token_type": "Bearer", "expires_in": 3600},
            )
        script = self.responses.get(request.url.path)
        if script:
            entry = script.pop(0) if len(script) > 1 else script[0]
            status, payload = entry
            return httpx.Response(status, json=payload)
        return httpx.Response(200, json={"isError": False, "item": {"path": request.url.path}})

    @property
    def api_requests(self):
        return [r for r in self.requests if r.url.host != "auth.sbanken.no"]


@pytest.fixture
def fake():
    return FakeSBanken()


@pytest.fixture
def sbanken(fake):
    with SBanken("id", "secret", transport=httpx.MockTransport(fake.handler)) as client:
        yield client


def test_defaults(sbanken):
    config = sbanken.get_configuration()
    assert config.base_uri == "https://auth.sbanken.no/identityserver/"
    assert config.auth_retries_codes == {401, 500}
    assert sbanken.endpoint == "https://api.sbanken.no/bank/api/v1/"
    assert sbanken.auth.token_url == "https://auth.sbanken.no/identityserver/connect/token"


def test_get_accounts(sbanken, fake):
    result = sbanken.get_accounts(CUSTOMER)

    assert result == {"isError": False, "item": {"path": "/bank/api/v1/Accounts"}}
    (request,) = fake.api_requests
    assert str(request.url) == "https://api.sbanken.no/bank/api/v1/Accounts"
    assert request.headers["customerId"] == CUSTOMER
    assert request.headers["Authorization"] == "Bearer sb-1"
    assert request.headers["Accept"] == "application/json"


def test_get_customer_uses_customers_api(sbanken, fake):
    sbanken.get_customer(CUSTOMER)
    assert str(fake.api_requests[0].url) == "https://api.sbanken.no/customers/api/v1/Customers"


def test_account_id_is_quoted(sbanken, fake):
    sbanken.get_account(CUSTOMER, "ab/cd")
    assert fake.api_requests[0].url.raw_path == b"/bank/api/v1/Accounts/ab%2Fcd"


def test_api_error_flag_raises(sbanken, fake):
    fake.responses["/bank/api/v1/Accounts"] = [(200, {"isError": True, "errorMessage": "nope"})]

    with pytest.raises(SBankenAccountsError, match="Could not retrieve accounts"):
        sbanken.get_accounts(CUSTOMER)


def test_http_error_raises(sbanken, fake):
    fake.responses["/customers/api/v1/Customers"] = [(403, {"error": "forbidden"})]

    with pytest.raises(SBankenCustomerError):
        sbanken.get_customer(CUSTOMER)


def test_unauthorized_refreshes_token(sbanken, fake):
    fake.responses["/bank/api/v1/Accounts"] = [(401, {}), (200, {"isError": False, "items": []})]

    assert sbanken.get_accounts(CUSTOMER) == {"isError": False, "items": []}
    assert [r.headers["Authorization"] for r in fake.api_requests] == ["Bearer sb-1", "Bearer sb-2"]


class TestTransactions:
    def test_explicit_dates(self, sbanken, fake):
        sbanken.get_transactions(
            CUSTOMER, "acc1", index=10, length=20, start_date="2024-01-01", end_date=date(2024, 1, 31)
        )

        params = fake.api_requests[0].url.params
        assert fake.api_requests[0].url.path == "/bank/api/v1/Transactions/acc1"
        assert dict(params) == {
            "index": "10",
            "length": "20",
            "startDate": "2024-01-01",
            "endDate": "2024-01-31",
        }

    def test_default_window_is_last_30_days(self, sbanken, fake):
        sbanken.get_transactions(CUSTOMER, "acc1")

        today = date.today()
        params = fake.api_requests[0].url.params
        assert params["endDate"] == today.isoformat()
        assert params["startDate"] == (today - timedelta(days=30)).isoformat()

    def test_end_date_limit(self, sbanken, fake):
        with pytest.raises(SBankenTransactionsError, match="maximum end date"):
            sbanken.get_transactions(CUSTOMER, "acc1", end_date=date.today() + timedelta(days=2))
        assert fake.requests == []

    def test_start_date_limit(self, sbanken):
        with pytest.raises(SBankenTransactionsError, match="minimum start date"):
            sbanken.get_transactions(CUSTOMER, "acc1", start_date="1999-12-31")

    def test_invalid_date(self, sbanken):
        with pytest.raises(SBankenTransactionsError, match="Invalid date"):
            sbanken.get_transactions(CUSTOMER, "acc1", start_date="last week")


def test_transfer_sends_json(sbanken, fake):
    fake.responses["/bank/api/v1/Transfers"] = [(200, {"isError": False})]

    sbanken.post_transfer(CUSTOMER, "from", "to", "Rent", 100.5)

    request = fake.api_requests[0]
    assert request.method == "POST"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {
        "fromAccountId": "from",
        "toAccountId": "to",
        "message": "Rent",
        "amount": 100.5,
    }


def test_failed_transfer(sbanken, fake):
    fake.responses["/bank/api/v1/Transfers"] = [(400, {"isError": True})]

    with pytest.raises(SBankenTransferError):
        sbanken.post_transfer(CUSTOMER, "from", "to", "Rent", 100.5)


class TestEInvoices:
    def test_default_window(self, sbanken, fake):
        sbanken.get_einvoices(CUSTOMER, status="new")

        today = date.today()
        params = fake.api_requests[0].url.params
        assert params["status"] == "NEW"
        assert params["startDate"] == today.isoformat()
        assert params["endDate"] == (today + timedelta(days=60)).isoformat()

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"status": "PAID"}, "status needs to be one of"),
            ({"length": 1001}, "maximum length"),
            ({"length": -1}, "at least 0"),
            ({"end_date": date.today() + timedelta(days=61)}, "maximum end date"),
        ],
    )
    def test_validation(self, sbanken, fake, kwargs, message):
        with pytest.raises(SBankenEInvoiceError, match=message):
            sbanken.get_einvoices(CUSTOMER, **kwargs)
        assert fake.requests == []

    def test_pay_einvoice(self, sbanken, fake):
        sbanken.post_einvoice(CUSTOMER, "inv-1", "acc1", pay_only_minimum_amount=True)

        request = fake.api_requests[0]
        assert request.url.path == "/bank/api/v1/EFakturas"
        assert json.loads(request.content) == {
            "eFakturaId": "inv-1",
            "accountId": "acc1",
            "payOnlyMinimumAmount": True,
        }

    def test_get_einvoice(self, sbanken, fake):
        sbanken.get_einvoice(CUSTOMER, "inv-1")
        assert fake.api_requests[0].url.path == "/bank/api/v1/EFakturas/inv-1"


def test_operations_can_be_queued(sbanken, fake):
    sbanken.queue()
    handles = [sbanken.get_accounts(CUSTOMER), sbanken.get_account(CUSTOMER, "acc1")]

    assert all(isinstance(h, QueuedRequest) for h in handles)
    assert fake.api_requests == []

    results = sbanken.flush()
    assert [SBanken.is_successful(r) for r in results] == [True, True]


def test_connect_registry(fake):
    with psd2.connect("SBanken", "id", "secret", transport=httpx.MockTransport(fake.handler)) as client:
        assert isinstance(client, SBanken)


def test_connect_unknown_bank():
    with pytest.raises(ConfigurationError, match="Supported banks: sbanken"):
        psd2.connect("nordea", "id", "secret")
