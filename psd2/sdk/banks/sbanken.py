"""Integration for the SBanken open banking API (https://sbanken.no).

API reference: https://github.com/Sbanken/api-examples
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional, Union
from urllib.parse import quote

from ..batch import QueuedRequest
from ..client import BankClient
from ..exceptions import IntegrationSemanticError

MIN_DATE = date(2000, 1, 1)
EINVOICE_STATUSES = ("ALL", "NEW", "PROCESSED", "DELETED")
MAX_EINVOICE_LENGTH = 1000

DateLike = Union[date, str, None]


class SBankenError(IntegrationSemanticError):
    """Base class for SBanken operation failures."""


class SBankenCustomerError(SBankenError):
    pass


class SBankenAccountsError(SBankenError):
    pass


class SBankenTransactionsError(SBankenError):
    pass


class SBankenEInvoiceError(SBankenError):
    pass


class SBankenTransferError(SBankenError):
    pass


def _as_date(value: DateLike, error: type[SBankenError]) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise error(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


def _date_range(
    start: DateLike,
    end: DateLike,
    *,
    default_end: date,
    span: timedelta,
    max_end: date,
    error: type[SBankenError],
) -> tuple[date, date]:
    end_date = _as_date(end, error) or default_end
    start_date = _as_date(start, error) or end_date - span
    if end_date > max_end:
        raise error(f"The maximum end date that is allowed by this API is {max_end.isoformat()}")
    if start_date < MIN_DATE:
        raise error(f"The minimum start date that is allowed by this API is {MIN_DATE.isoformat()}")
    return start_date, end_date


class SBanken(BankClient):
    """Client for SBanken's customers and bank APIs."""

    endpoints = {
        "token": "https://auth.sbanken.no/identityserver/",
        "customers": "https://api.sbanken.no/customers/api/v1/",
        "accounts": "https://api.sbanken.no/bank/api/v1/",
    }
    default_endpoint = "accounts"
    default_headers = {
        "Accept": "application/json",
        "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
    }
    default_configuration = {
        "base_uri": "https://auth.sbanken.no/identityserver/",
        "auth_retries_codes": [401, 500],
    }

    @staticmethod
    def is_successful(result: Any) -> bool:
        """SBanken wraps every payload in an object carrying ``isError``."""
        if not getattr(result, "ok", False):
            return False
        return isinstance(result.value, dict) and not result.value.get("isError")

    def _call(
        self,
        error: type[SBankenError],
        message: str,
        method: str,
        path: str,
        customer_id: str,
        parameters: Any = None,
        headers: Optional[dict[str, str]] = None,
        endpoint: str = "accounts",
    ) -> Any:
        url = self.get_endpoint(endpoint) + path
        result = self.request(method, url, parameters, {"customerId": customer_id, **(headers or {})})
        if isinstance(result, QueuedRequest):
            return result
        if not self.is_successful(result):
            raise error(message)
        return result.value

    # ---------------- Customers -----------------

    def get_customer(self, customer_id: str) -> dict:
        return self._call(
            SBankenCustomerError,
            "Could not retrieve customer information. Ensure that you have the correct privileges to do so.",
            "GET",
            "Customers",
            customer_id,
            endpoint="customers",
        )

    # ---------------- Accounts -----------------

    def get_accounts(self, customer_id: str) -> dict:
        return self._call(
            SBankenAccountsError,
            "Could not retrieve accounts. Ensure that you have the correct privileges to do so.",
            "GET",
            "Accounts",
            customer_id,
        )

    def get_account(self, customer_id: str, account_id: str) -> dict:
        return self._call(
            SBankenAccountsError,
            "Could not retrieve account. Ensure that you have the correct privileges to do so.",
            "GET",
            f"Accounts/{quote(account_id, safe='')}",
            customer_id,
        )

    def get_transactions(
        self,
        customer_id: str,
        account_id: str,
        index: int = 0,
        length: int = 100,
        start_date: DateLike = None,
        end_date: DateLike = None,
    ) -> dict:
        """List transactions on an account.

        Defaults to the last 30 days. The API accepts end dates up to
        tomorrow and start dates from 2000-01-01.
        """
        today = date.today()
        start, end = _date_range(
            start_date,
            end_date,
            default_end=today,
            span=timedelta(days=30),
            max_end=today + timedelta(days=1),
            error=SBankenTransactionsError,
        )
        parameters = {
            "index": index,
            "length": length,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
        }
        return self._call(
            SBankenTransactionsError,
            "Could not retrieve transactions. Ensure that you have the correct privileges to do so.",
            "GET",
            f"Transactions/{quote(account_id, safe='')}",
            customer_id,
            parameters,
        )

    def post_transfer(
        self,
        customer_id: str,
        from_account_id: str,
        to_account_id: str,
        message: str,
        amount: float,
    ) -> dict:
        """Transfer money between the customer's own accounts."""
        return self._call(
            SBankenTransferError,
            "Could not make transfer. Ensure that you have the correct access privileges.",
            "POST",
            "Transfers",
            customer_id,
            {
                "fromAccountId": from_account_id,
                "toAccountId": to_account_id,
                "message": message,
                "amount": amount,
            },
            {"Content-Type": "application/json"},
        )

    # ---------------- E-invoices -----------------

    def get_einvoices(
        self,
        customer_id: str,
        status: str = "ALL",
        index: int = 0,
        length: int = 100,
        start_date: DateLike = None,
        end_date: DateLike = None,
    ) -> dict:
        """List e-invoices, by default from today up to 60 days ahead."""
        status = status.upper()
        if status not in EINVOICE_STATUSES:
            raise SBankenEInvoiceError(f"The status needs to be one of {', '.join(EINVOICE_STATUSES)}.")
        if length > MAX_EINVOICE_LENGTH:
            raise SBankenEInvoiceError(f"The maximum length that can be used is {MAX_EINVOICE_LENGTH}.")
        if length < 0:
            raise SBankenEInvoiceError("The length needs to be at least 0.")

        horizon = date.today() + timedelta(days=60)
        start, end = _date_range(
            start_date,
            end_date,
            default_end=horizon,
            span=timedelta(days=60),
            max_end=horizon,
            error=SBankenEInvoiceError,
        )
        parameters = {
            "status": status,
            "index": index,
            "length": length,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
        }
        return self._call(
            SBankenEInvoiceError,
            "Could not get e-invoices. Ensure that you have the correct access privileges.",
            "GET",
            "EFakturas",
            customer_id,
            parameters,
        )

    def get_einvoice(self, customer_id: str, einvoice_id: str) -> dict:
        return self._call(
            SBankenEInvoiceError,
            "Could not get e-invoice. Ensure that you have the correct access privileges.",
            "GET",
            f"EFakturas/{quote(einvoice_id, safe='')}",
            customer_id,
        )

    def post_einvoice(
        self,
        customer_id: str,
        einvoice_id: str,
        account_id: str,
        pay_only_minimum_amount: bool = False,
    ) -> dict:
        """Pay a new e-invoice from ``account_id``."""
        return self._call(
            SBankenEInvoiceError,
            "Could not pay e-invoice. Make sure that you have the correct access privileges "
            "and that the e-invoice hasn't been paid already.",
            "POST",
            "EFakturas",
            customer_id,
            {
                "eFakturaId": einvoice_id,
                "accountId": account_id,
                "payOnlyMinimumAmount": pay_only_minimum_amount,
            },
            {"Content-Type": "application/json"},
        )
