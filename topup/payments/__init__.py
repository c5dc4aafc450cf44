"""
Payments: gateway adapters over redirect and direct-submit capabilities.

    from topup import payments as P

    registry = P.default_gateways(executor)
    card = registry.get(P.PaymentMethod.CREDIT_CARD)

    match card.validate(P.CardDetails("4111 1111 1111 1111", "12/29", "123", "A. Player")):
        case Error(P.GatewayError(kind=P.GatewayErrorKind.VALIDATION, field=field)):
            highlight(field)
"""

from topup.payments._types import (
    Capability,
    PaymentMethod,
    PaymentOutcome,
    PaymentAttempt,
    CaptureRequest,
    CardDetails,
    BankDetails,
    PaymentDetails,
    DirectPayment,
    GatewayErrorKind,
    GatewayError,
)
from topup.payments._validate import (
    MAX_AMOUNT,
    validate_card,
    validate_bank,
    validate_amount,
)
from topup.payments._gateways import (
    UNAVAILABLE_MESSAGE,
    gateway_error_from,
    is_success,
    Gateway,
    RedirectGateway,
    DirectGateway,
    PayPalGateway,
    DirectSubmitGateway,
    CreditCardGateway,
    BankTransferGateway,
    EcpayGateway,
    AnyGateway,
    GatewayRegistry,
    default_gateways,
)

__all__ = (
    # Types
    "Capability",
    "PaymentMethod",
    "PaymentOutcome",
    "PaymentAttempt",
    "CaptureRequest",
    "CardDetails",
    "BankDetails",
    "PaymentDetails",
    "DirectPayment",
    "GatewayErrorKind",
    "GatewayError",
    # Validation
    "MAX_AMOUNT",
    "validate_card",
    "validate_bank",
    "validate_amount",
    # Gateways
    "UNAVAILABLE_MESSAGE",
    "gateway_error_from",
    "is_success",
    "Gateway",
    "RedirectGateway",
    "DirectGateway",
    "PayPalGateway",
    "DirectSubmitGateway",
    "CreditCardGateway",
    "BankTransferGateway",
    "EcpayGateway",
    "AnyGateway",
    "GatewayRegistry",
    "default_gateways",
)
