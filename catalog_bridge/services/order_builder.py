# -*- coding: utf-8 -*-
"""
Construcción y creación de pedidos de KeyCRM a partir de recibos de Checkbox
"""

import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from ..models.receipt import Receipt
from .api_client import APIClientError
from .product_resolver import ResolvedProduct

_logger = logging.getLogger(__name__)

_FRACTION_AND_OFFSET = re.compile(r'(\.\d+)?(Z|[+-]\d{2}:?\d{2})?$')


def is_duplicate_order(error: APIClientError) -> bool:
    """422 que menciona source_uuid: el pedido de ese recibo ya existe"""
    if error.status_code != 422:
        return False
    body = error.payload if isinstance(error.payload, str) else json.dumps(error.payload, ensure_ascii=False)
    return 'source_uuid' in f"{error.detail_message} {body}".lower()


def format_ordered_at(created_at: Optional[str]) -> Optional[str]:
    """
    Fecha del recibo en el formato local que espera KeyCRM

    '2026-01-02T10:15:30.123+02:00' -> '2026-01-02 10:15:30'
    """
    if not created_at:
        return None
    value = _FRACTION_AND_OFFSET.sub('', created_at.strip())
    return value.replace('T', ' ')


class OrderResult(BaseModel):
    status: str  # created | duplicate | skipped
    order_id: Optional[Any] = None
    payload: Optional[Dict[str, Any]] = None


class OrderBuilder:
    """
    Crea un pedido por recibo, usando el id del recibo como source_uuid

    KeyCRM garantiza la unicidad de source_uuid: un segundo intento con
    el mismo recibo responde 422 y se trata como ya procesado.
    """

    def __init__(
        self,
        keycrm,
        source_id: Optional[int],
        payment_method_id: int = 2,
        buyer_email: Optional[str] = None,
        status_id: Optional[int] = None,
        client_id: Optional[int] = None,
        update_delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.keycrm = keycrm
        self.source_id = source_id
        self.payment_method_id = payment_method_id
        self.buyer_email = buyer_email
        self.status_id = status_id
        self.client_id = client_id
        self.update_delay = update_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, keycrm, settings) -> 'OrderBuilder':
        deferred = settings.deferred_order_update
        return cls(
            keycrm,
            source_id=settings.keycrm_source_id,
            payment_method_id=settings.keycrm_payment_method_id,
            buyer_email=settings.keycrm_buyer_email or None,
            status_id=settings.keycrm_order_status_id if deferred else None,
            client_id=settings.keycrm_buyer_id if deferred else None,
            update_delay=settings.order_update_delay,
        )

    def build_payload(self, receipt: Receipt, products: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Payload de `POST /order`

        Args:
            receipt: Recibo aceptado
            products: Líneas de pedido ya convertidas

        Returns:
            dict: Payload del pedido
        """
        payload = {
            'source_id': self.source_id,
            'source_uuid': receipt.id,
            'products': products,
        }

        if self.buyer_email:
            payload['buyer'] = {'email': self.buyer_email}

        if receipt.total_sum > 0:
            payload['payments'] = [{
                'payment_method_id': self.payment_method_id,
                'amount': receipt.total_sum / 100,
                'status': 'paid',
            }]

        ordered_at = format_ordered_at(receipt.created_at)
        if ordered_at:
            payload['ordered_at'] = ordered_at

        return payload

    def submit(self, receipt: Receipt, resolved: List[ResolvedProduct]) -> OrderResult:
        """
        Crea el pedido en KeyCRM (una sola vez por recibo)

        Returns:
            OrderResult: created, duplicate (ya procesado) o skipped (sin líneas)

        Raises:
            APIClientError: Si KeyCRM rechaza el pedido por otro motivo
        """
        if not resolved:
            _logger.warning(f"No products resolved for receipt {receipt.id}, skipping order creation.")
            return OrderResult(status='skipped')

        line_total = receipt.total_sum if len(receipt.goods) == 1 else None
        products = [line.to_order_line(line_total) for line in resolved]
        payload = self.build_payload(receipt, products)

        try:
            order = self.keycrm.create_order(payload)
        except APIClientError as e:
            if is_duplicate_order(e):
                _logger.info(f"Duplicate receipt {receipt.id} — order already exists, ignored.")
                return OrderResult(status='duplicate', payload=payload)
            _logger.error(f"Failed to create order for receipt {receipt.id}: [{e.status_code}] {e.detail_message}")
            raise

        order_id = order.get('id')
        _logger.info(f"Created KeyCRM order #{order_id} from Checkbox receipt {receipt.id}")

        if order_id and self.status_id is not None and self.client_id is not None:
            self._deferred_update(order_id)

        return OrderResult(status='created', order_id=order_id, payload=payload)

    def _deferred_update(self, order_id):
        """
        Fija estado y cliente tras una pausa fija (un único intento)
        """
        self._sleep(self.update_delay)
        try:
            self.keycrm.update_order(order_id, {'status_id': self.status_id, 'client_id': self.client_id})
        except APIClientError as e:
            _logger.error(f"Failed to update order #{order_id}: {e.detail_message}")
            return
        _logger.info(f"Updated order #{order_id} → status={self.status_id}, client_id={self.client_id}")
