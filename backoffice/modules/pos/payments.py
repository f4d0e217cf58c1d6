"""
Pagos mixtos del terminal POS

Implementa la conciliación de pagos de una venta:
- Mixed Payments: efectivo + tarjeta + uno o varios cheques en una sola venta
- Cash auto-balance: el efectivo cubre siempre lo que falta tras los otros métodos
- Payment Validation: suma igual al total (tolerancia de un centavo) y reglas por método

Los pagos no se registran aquí; se envían con la orden al servicio de órdenes.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from backoffice.common.dates import today as current_date
from backoffice.common.exceptions import CheckoutValidationError, PaymentMethodNotFoundError
from backoffice.core.config import settings
from backoffice.modules.pos.schemas import (
    PaymentMethod, PaymentMethodEntry, PaymentMethodUpdate, PaymentStatus, PaymentValidation
)
from backoffice.modules.taxes.calculator import round_money

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
UNIQUE_METHODS = (PaymentMethod.CASH, PaymentMethod.CREDIT_CARD)


def _initial_cash() -> PaymentMethodEntry:
    return PaymentMethodEntry(id="cash-1", method=PaymentMethod.CASH, amount=ZERO)


class PaymentReconciler:
    """Pagos ofrecidos para el total actual de la orden"""

    def __init__(self, order_total: Decimal = ZERO):
        self.order_total = order_total
        self.payment_methods: List[PaymentMethodEntry] = [_initial_cash()]

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payment_methods), ZERO)

    def get_payment_method(self, payment_id: str) -> PaymentMethodEntry:
        entry = next((p for p in self.payment_methods if p.id == payment_id), None)
        if entry is None:
            raise PaymentMethodNotFoundError(f"Payment method {payment_id} not found")
        return entry

    def _cash_entry(self) -> Optional[PaymentMethodEntry]:
        return next((p for p in self.payment_methods if p.method == PaymentMethod.CASH), None)

    def reset(self) -> None:
        self.payment_methods = [_initial_cash()]
        self._rebalance_cash()

    def set_order_total(self, total: Decimal) -> None:
        self.order_total = total
        self._rebalance_cash()

    # ===== PAGOS MIXTOS =====

    def add_payment_method(self, method: PaymentMethod) -> PaymentMethodEntry:
        """
        Agregar un método de pago.

        Efectivo y tarjeta solo una vez; cheques sin límite. Los métodos que no son
        cheque inician con el saldo pendiente, los cheques en 0 con fecha de hoy.
        """
        method = PaymentMethod(method)
        if method in UNIQUE_METHODS and any(p.method == method for p in self.payment_methods):
            raise CheckoutValidationError(f"{method.value} payment method already exists")

        entry = PaymentMethodEntry(id=f"{method.value.lower()}-{uuid4().hex[:8]}", method=method)

        if method == PaymentMethod.CHECK:
            entry.check_date = current_date()
        else:
            remaining = max(ZERO, round_money(self.order_total - self.total_paid))
            entry.amount = remaining
            if method == PaymentMethod.CASH:
                entry.cash_given = remaining

        self.payment_methods.append(entry)
        self._rebalance_cash()
        logger.debug(f"Added {method.value} payment {entry.id}")
        return entry

    def update_payment_method(self, payment_id: str, updates: PaymentMethodUpdate) -> PaymentMethodEntry:
        """Aplicar cambios parciales; el efectivo se reajusta después de cada cambio"""
        entry = self.get_payment_method(payment_id)
        changes = updates.model_dump(exclude_unset=True)

        if changes.get('amount') is not None and changes['amount'] < 0:
            raise CheckoutValidationError(f"Invalid amount for {entry.method.value} payment")

        for field, value in changes.items():
            setattr(entry, field, value)

        self._rebalance_cash()
        return entry

    def remove_payment_method(self, payment_id: str) -> None:
        entry = self.get_payment_method(payment_id)
        if len(self.payment_methods) <= 1:
            raise CheckoutValidationError("At least one payment method is required")

        self.payment_methods.remove(entry)
        self._rebalance_cash()

    def _rebalance_cash(self) -> None:
        """El efectivo cubre max(0, total - otros métodos)"""
        cash = self._cash_entry()
        if cash is None:
            return

        non_cash = sum((p.amount for p in self.payment_methods if p.method != PaymentMethod.CASH), ZERO)
        cash.amount = max(ZERO, round_money(self.order_total - non_cash))

        if cash.amount == 0:
            cash.cash_given = None
            cash.cash_change = ZERO
        elif cash.cash_given is not None:
            cash.cash_change = max(ZERO, round_money(cash.cash_given - cash.amount))
        else:
            cash.cash_change = ZERO

    # ===== VALIDACIÓN =====

    def validate(self, today: Optional[date] = None) -> PaymentValidation:
        """
        Validar los pagos contra el total de la orden

        Returns:
            PaymentValidation con el primer motivo de rechazo encontrado
        """
        today = today or current_date()
        total_paid = self.total_paid

        if abs(total_paid - self.order_total) > settings.PAYMENT_TOLERANCE:
            return PaymentValidation(
                valid=False,
                message=(f"Payment total ({round_money(total_paid)}) must equal "
                         f"order total ({round_money(self.order_total)})")
            )

        for payment in self.payment_methods:
            # Efectivo en 0 es el valor inicial cuando otro método cubre todo
            if payment.method == PaymentMethod.CASH and payment.amount == 0:
                continue

            if payment.amount <= 0:
                return PaymentValidation(
                    valid=False, message=f"Invalid amount for {payment.method.value} payment"
                )

            if payment.method == PaymentMethod.CASH:
                if payment.cash_given is None or payment.cash_given < payment.amount:
                    return PaymentValidation(
                        valid=False, message=f"Cash given must be at least {round_money(payment.amount)}"
                    )

            elif payment.method == PaymentMethod.CHECK:
                if not (payment.check_number or "").strip():
                    return PaymentValidation(valid=False, message="Check number is required")
                if payment.check_date is None:
                    return PaymentValidation(valid=False, message="Check date is required for check payments")
                if payment.check_date < today:
                    return PaymentValidation(valid=False, message="Check date cannot be in the past")

        return PaymentValidation(valid=True)

    def payment_status(self) -> PaymentStatus:
        """Los cheques quedan pendientes de verificación"""
        if any(p.method == PaymentMethod.CHECK for p in self.payment_methods):
            return PaymentStatus.PENDING
        return PaymentStatus.COMPLETED

    def payment_summary(self) -> Dict[str, Any]:
        """Resumen de pagos por método"""
        summary = {}
        for payment in self.payment_methods:
            method = payment.method.value
            if method not in summary:
                summary[method] = {
                    'method': method,
                    'total_amount': ZERO,
                    'count': 0
                }
            summary[method]['total_amount'] += payment.amount
            summary[method]['count'] += 1

        cash = self._cash_entry()
        return {
            'methods': list(summary.values()),
            'total_paid': round_money(self.total_paid),
            'change_amount': cash.cash_change if cash else ZERO,
            'payment_count': len(self.payment_methods)
        }
