"""
Normalization of inbound payment notifications.

Accepted shapes:
  {"accountData": {"account", "nativeBalanceChange"}, "signature"}   amount in lamports
  {"address", "balance", "signature"}                                 amount in lamports
  {"walletAddress", "amount", "txId"}                                 amount in SOL
"""
from dataclasses import dataclass
from decimal import Decimal, DecimalException
from typing import Any

LAMPORTS_PER_SOL = 1_000_000_000
# fits a signed 64-bit column
MAX_LAMPORTS = 2**63 - 1
MAX_SOL = Decimal(MAX_LAMPORTS) / LAMPORTS_PER_SOL
MAX_AMOUNT_TEXT = 40


class InvalidNotificationError(ValueError):
    """Body matches none of the accepted notification shapes."""


@dataclass(frozen=True)
class PaymentNotification:
    address: str
    amount: int
    tx_reference: str


def _parse_amount(value: Any, unit: str, limit: Decimal) -> Decimal:
    """Finite decimal with |value| <= limit; anything else is an invalid notification."""
    if isinstance(value, bool) or value is None:
        raise InvalidNotificationError(f"Invalid {unit} amount: {value!r}")
    text = str(value).strip()
    if len(text) > MAX_AMOUNT_TEXT:
        raise InvalidNotificationError(f"Invalid {unit} amount: too long")
    try:
        amount = Decimal(text)
    except (DecimalException, ValueError) as e:
        raise InvalidNotificationError(f"Invalid {unit} amount: {value!r}") from e
    if not amount.is_finite() or abs(amount) > limit:
        raise InvalidNotificationError(f"Invalid {unit} amount: {value!r}")
    return amount


def _to_integer(amount: Decimal, value: Any, unit: str) -> int:
    try:
        if amount != amount.to_integral_value():
            raise InvalidNotificationError(f"Fractional lamports in {unit} amount: {value!r}")
        return int(amount)
    except (DecimalException, ArithmeticError) as e:
        raise InvalidNotificationError(f"Invalid {unit} amount: {value!r}") from e


def sol_to_lamports(value: Any) -> int:
    amount = _parse_amount(value, "SOL", MAX_SOL)
    return _to_integer(amount * LAMPORTS_PER_SOL, value, "SOL")


def lamports_to_sol(amount: int) -> float:
    return float(Decimal(amount) / LAMPORTS_PER_SOL)


def _lamports(value: Any) -> int:
    return _to_integer(_parse_amount(value, "lamport", Decimal(MAX_LAMPORTS)), value, "lamport")


def normalize_notification(body: Any) -> PaymentNotification:
    if not isinstance(body, dict):
        raise InvalidNotificationError("Notification body must be an object")

    account_data = body.get("accountData")
    if isinstance(account_data, dict) and body.get("signature"):
        address = account_data.get("account")
        if address:
            return PaymentNotification(
                address=str(address),
                amount=_lamports(account_data.get("nativeBalanceChange")),
                tx_reference=str(body["signature"]),
            )

    if body.get("address") and body.get("balance") is not None and body.get("signature"):
        return PaymentNotification(
            address=str(body["address"]),
            amount=_lamports(body["balance"]),
            tx_reference=str(body["signature"]),
        )

    if body.get("walletAddress") and body.get("amount") is not None and body.get("txId"):
        return PaymentNotification(
            address=str(body["walletAddress"]),
            amount=sol_to_lamports(body["amount"]),
            tx_reference=str(body["txId"]),
        )

    raise InvalidNotificationError("Invalid webhook format")
