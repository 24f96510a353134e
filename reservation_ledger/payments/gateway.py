import random
import secrets
import threading
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from reservation_ledger.config import settings
from reservation_ledger.logger_config import get_logger

log = get_logger("payments")

class PaymentKind(str, Enum):
    CHARGE = "charge"
    REFUND = "refund"

class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class PaymentRecord(BaseModel):
    """One call made against the gateway"""
    transaction_id: str
    kind: PaymentKind
    amount: Decimal
    status: PaymentStatus
    processed_at: datetime

class PaymentGateway:
    """Opaque payment gate used by the engine.

    ``charge`` may refuse; ``refund`` is fire-and-forget. Subclasses decide
    whether a charge succeeds via ``_authorize``.
    """

    def __init__(self):
        self.history: List[PaymentRecord] = []
        self._lock = threading.Lock()

    def _authorize(self, amount: Decimal) -> bool:
        raise NotImplementedError

    def _record(self, kind: PaymentKind, amount: Decimal, status: PaymentStatus) -> PaymentRecord:
        record = PaymentRecord(
            transaction_id=f"TXN{secrets.token_hex(8).upper()}",
            kind=kind,
            amount=amount,
            status=status,
            processed_at=datetime.now()
        )
        with self._lock:
            self.history.append(record)
        return record

    def charge(self, amount: Decimal) -> bool:
        approved = self._authorize(amount)
        record = self._record(
            PaymentKind.CHARGE, amount, PaymentStatus.PAID if approved else PaymentStatus.FAILED
        )
        log.info(f"Charge of {amount:.2f} {record.status.value} ({record.transaction_id})")
        return approved

    def refund(self, amount: Decimal) -> None:
        record = self._record(PaymentKind.REFUND, amount, PaymentStatus.REFUNDED)
        log.info(f"Refund of {amount:.2f} processed ({record.transaction_id})")

    @property
    def charges(self) -> List[PaymentRecord]:
        return [r for r in self.history if r.kind == PaymentKind.CHARGE]

    @property
    def refunds(self) -> List[PaymentRecord]:
        return [r for r in self.history if r.kind == PaymentKind.REFUND]

class SimulatedPaymentGateway(PaymentGateway):
    """Approves a configurable share of charges at random"""

    def __init__(self, success_rate: Optional[float] = None, seed: Optional[int] = None):
        super().__init__()
        self.success_rate = settings.PAYMENT_SUCCESS_RATE if success_rate is None else success_rate
        if not 0.0 <= self.success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        self._random = random.Random(settings.PAYMENT_SEED if seed is None else seed)

    def _authorize(self, amount: Decimal) -> bool:
        return self._random.random() < self.success_rate

class AlwaysApprovePaymentGateway(PaymentGateway):
    def _authorize(self, amount: Decimal) -> bool:
        return True

class AlwaysDeclinePaymentGateway(PaymentGateway):
    def _authorize(self, amount: Decimal) -> bool:
        return False
