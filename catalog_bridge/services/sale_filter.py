# -*- coding: utf-8 -*-
"""
Filtro de notificaciones de venta de Checkbox

Decide si una notificación es una venta real del TPV o un eco de la
fiscalización que el propio KeyCRM hace en Checkbox (que no debe volver
a importarse como pedido).
"""

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from ..models.receipt import Receipt, ReceiptEnvelope

_logger = logging.getLogger(__name__)


class FilterDecision(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    receipt: Optional[Receipt] = None


def _guard_receipt_shape(envelope: ReceiptEnvelope, cashier_id) -> Optional[str]:
    if envelope.receipt is None:
        return envelope.error or 'no receipt object found'
    return None


def _guard_receipt_type(envelope: ReceiptEnvelope, cashier_id) -> Optional[str]:
    receipt_type = envelope.receipt.type
    if receipt_type and receipt_type.upper() != 'SELL':
        return f"receipt.type={receipt_type}"
    return None


def _guard_order_reference(envelope: ReceiptEnvelope, cashier_id) -> Optional[str]:
    # Los recibos de la fiscalización de KeyCRM llevan order_id
    order_id = envelope.receipt.order_id
    if order_id is not None:
        return f"fiscalization receipt for order {order_id}"
    return None


def _guard_catalog_goods(envelope: ReceiptEnvelope, cashier_id) -> Optional[str]:
    # Las ventas reales se escanean del catálogo y siempre llevan good_id
    goods = envelope.receipt.goods
    if goods and all(item.good_id is None for item in goods):
        return 'all good_id null — fiscalization receipt'
    return None


def _guard_cashier(envelope: ReceiptEnvelope, cashier_id) -> Optional[str]:
    receipt_cashier = envelope.receipt.cashier_id
    if cashier_id and receipt_cashier and receipt_cashier != cashier_id:
        return f"cashier mismatch: {receipt_cashier}"
    return None


GUARDS: List[Callable[[ReceiptEnvelope, Optional[str]], Optional[str]]] = [
    _guard_receipt_shape,
    _guard_receipt_type,
    _guard_order_reference,
    _guard_catalog_goods,
    _guard_cashier,
]


def evaluate(envelope: ReceiptEnvelope, cashier_id: Optional[str]) -> FilterDecision:
    """
    Aplica las guardas en orden; la primera que coincide descarta el evento

    Args:
        envelope: Notificación decodificada
        cashier_id: UUID del cajero con el que este proceso inició sesión

    Returns:
        FilterDecision: accepted=True con el recibo, o accepted=False con
        el motivo del descarte
    """
    for guard in GUARDS:
        reason = guard(envelope, cashier_id)
        if reason is not None:
            _logger.info(f"Webhook ignored — {reason}")
            return FilterDecision(accepted=False, reason=reason)

    return FilterDecision(accepted=True, receipt=envelope.receipt)
