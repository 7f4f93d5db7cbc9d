"""Example walking through the SBanken integration of the PSD2 client."""

import os

import psd2.sdk as psd2
from psd2.sdk.banks.sbanken import SBankenError


def main() -> None:
    """Show accounts, recent transactions and pending e-invoices for a customer."""

    # Load environment variables
    psd2.load_dotenv_for_sdk()
    settings = psd2.get_settings()
    customer_id = os.getenv("SBANKEN_CUSTOMER_ID", "")

    print("=== PSD2 Client SBanken Example ===\n")

    if not settings.client_id or not customer_id:
        print("   ✗ Set PSD2_CLIENT_ID, PSD2_CLIENT_SECRET and SBANKEN_CUSTOMER_ID first")
        return

    with psd2.connect("sbanken", settings.client_id, settings.client_secret) as bank:
        # 1. Fetch a token up front
        print("1. Fetching auth token...")
        try:
            token = bank.get_auth_token()
        except psd2.AuthTokenError as e:
            print(f"   ✗ {e}")
            return
        print(f"   ✓ {token.token_type} token, expires in {token.expires_in}s")

        # 2. List accounts
        print("\n2. Listing accounts...")
        try:
            accounts = bank.get_accounts(customer_id).get("items", [])
        except SBankenError as e:
            print(f"   ✗ {e}")
            return
        for account in accounts:
            print(f"   - {account.get('name')}: {account.get('balance')}")

        # 3. Fetch transactions for every account in one batch
        print("\n3. Fetching transactions in a batch...")
        bank.queue()
        for account in accounts:
            bank.get_transactions(customer_id, account["accountId"])
        for account, result in zip(accounts, bank.flush()):
            if bank.is_successful(result):
                print(f"   ✓ {account.get('name')}: {len(result.value.get('items', []))} transactions")
            else:
                print(f"   ✗ {account.get('name')}: {result}")

        # 4. Pending e-invoices, without retries for this one call
        print("\n4. Checking new e-invoices...")
        bank.set_configuration({"auth_retries": 0})
        try:
            invoices = bank.get_einvoices(customer_id, status="NEW")
            print(f"   ✓ {len(invoices.get('items', []))} new e-invoices")
        except SBankenError as e:
            print(f"   ✗ {e}")


if __name__ == "__main__":
    main()
