"""
Synchronous field validation. Runs before any network call.
"""

from __future__ import annotations

import re
from decimal import Decimal

from kungfu import Result, Ok, Error

from topup.payments._types import (
    BankDetails,
    CardDetails,
    GatewayError,
    GatewayErrorKind,
    PaymentDetails,
)

CARD_NUMBER = re.compile(r"^\d{16}$", re.ASCII)
CARD_EXPIRY = re.compile(r"^\d{2}/\d{2}$", re.ASCII)
CARD_CVV = re.compile(r"^\d{3,4}$", re.ASCII)
BANK_ACCOUNT = re.compile(r"^\d{1,16}$", re.ASCII)
BANK_CODE = re.compile(r"^\d{3}$", re.ASCII)

MAX_AMOUNT = Decimal("10000")


def _invalid(field: str, message: str) -> Result[PaymentDetails, GatewayError]:
    return Error(GatewayError(GatewayErrorKind.VALIDATION, message, field=field))


def validate_card(details: CardDetails) -> Result[PaymentDetails, GatewayError]:
    """Returns the card with formatting whitespace stripped from the number."""
    number = "".join(details.number.split())
    expiry = details.expiry.strip()
    cvv = details.cvv.strip()
    holder = details.holder_name.strip()

    if not number or not expiry or not cvv or not holder:
        return _invalid("card", "Please fill in all credit card fields")
    if not CARD_NUMBER.match(number):
        return _invalid("number", "Card number must be 16 digits")
    if not CARD_EXPIRY.match(expiry):
        return _invalid("expiry", "Expiry date must be MM/YY")
    if not CARD_CVV.match(cvv):
        return _invalid("cvv", "CVV must be 3 or 4 digits")
    return Ok(CardDetails(number=number, expiry=expiry, cvv=cvv, holder_name=holder))


def validate_bank(details: BankDetails) -> Result[PaymentDetails, GatewayError]:
    account = details.account_number.strip()
    code = details.bank_code.strip()
    holder = details.holder_name.strip()

    if not account or not code or not holder:
        return _invalid("bank", "Please fill in all bank transfer fields")
    if not BANK_ACCOUNT.match(account):
        return _invalid("account_number", "Account number must be up to 16 digits")
    if not BANK_CODE.match(code):
        return _invalid("bank_code", "Bank code must be exactly 3 digits")
    return Ok(BankDetails(account_number=account, bank_code=code, holder_name=holder))


def validate_amount(amount: Decimal) -> Result[Decimal, GatewayError]:
    if not amount.is_finite() or amount <= 0 or amount > MAX_AMOUNT:
        return Error(
            GatewayError(
                GatewayErrorKind.VALIDATION,
                f"Payment amount must be between 0 and {MAX_AMOUNT}",
                field="amount",
            )
        )
    return Ok(amount)


__all__ = (
    "CARD_NUMBER",
    "CARD_EXPIRY",
    "CARD_CVV",
    "BANK_ACCOUNT",
    "BANK_CODE",
    "MAX_AMOUNT",
    "validate_card",
    "validate_bank",
    "validate_amount",
)
