"""Payment gateway adapters used to charge fares and issue refunds."""

from .gateway import (
    PaymentGateway, SimulatedPaymentGateway, AlwaysApprovePaymentGateway,
    AlwaysDeclinePaymentGateway, PaymentRecord, PaymentKind, PaymentStatus
)

__all__ = [
    "PaymentGateway",
    "SimulatedPaymentGateway",
    "AlwaysApprovePaymentGateway",
    "AlwaysDeclinePaymentGateway",
    "PaymentRecord",
    "PaymentKind",
    "PaymentStatus"
]
