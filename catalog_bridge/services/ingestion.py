# -*- coding: utf-8 -*-
"""
Ingesta de ventas de Checkbox como pedidos de KeyCRM

Flujo por llamada al webhook:
    RECEIVED → SIGNATURE_CHECK → FILTER → RESOLVE → BUILD → SUBMITTED
con salidas IGNORED (filtro), REJECTED (firma o cuerpo inválido) y
FAILED (error en la parte asíncrona, solo se registra en el log).

La respuesta HTTP se emite en cuanto el filtro acepta el recibo; la
resolución de productos y la creación del pedido corren después, en
segundo plano, para no agotar el timeout de Checkbox.
"""

import hashlib
import hmac
import json
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel

from ..models.receipt import Receipt, decode_envelope
from ..models.webhook_log import WebhookLog
from . import sale_filter
from .order_builder import OrderBuilder, OrderResult
from .product_resolver import ProductResolver

_logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'x-request-signature'


class IngestionState(str, Enum):
    RECEIVED = 'RECEIVED'
    SIGNATURE_CHECK = 'SIGNATURE_CHECK'
    FILTER = 'FILTER'
    RESOLVE = 'RESOLVE'
    BUILD = 'BUILD'
    SUBMITTED = 'SUBMITTED'
    IGNORED = 'IGNORED'
    REJECTED = 'REJECTED'
    FAILED = 'FAILED'


class WebhookResponse(BaseModel):
    """Decisión síncrona sobre una llamada al webhook"""
    state: IngestionState
    status_code: int = 200
    body: Dict[str, Any]
    receipt: Optional[Receipt] = None

    @property
    def accepted(self) -> bool:
        return self.receipt is not None


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Verifica la firma HMAC-SHA256 (hex) del cuerpo crudo

    Sin secreto configurado la verificación se omite (True). Con secreto,
    una firma ausente o mal formada es inválida.
    """
    if not secret:
        return True
    if not signature:
        return False

    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    try:
        return hmac.compare_digest(bytes.fromhex(expected), bytes.fromhex(signature.strip()))
    except ValueError:
        return False


class SaleIngestionPipeline:
    """
    Orquesta filtro → resolución → pedido para cada notificación de venta

    Es reentrante: cada llamada solo comparte el UUID del cajero (lectura)
    y las sesiones HTTP de los clientes.
    """

    def __init__(
        self,
        checkbox_session,
        resolver: ProductResolver,
        builder: OrderBuilder,
        webhook_secret: Optional[str] = None,
        webhook_log: Optional[WebhookLog] = None,
    ):
        self.checkbox_session = checkbox_session
        self.resolver = resolver
        self.builder = builder
        self.webhook_secret = webhook_secret
        self.webhook_log = webhook_log if webhook_log is not None else WebhookLog()

    def receive(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResponse:
        """
        Parte síncrona: firma, decodificación y filtro

        Args:
            raw_body: Cuerpo crudo de la petición (para el HMAC)
            headers: Headers HTTP

        Returns:
            WebhookResponse: Respuesta a enviar; si accepted, el recibo a
            procesar en segundo plano con process()
        """
        state = IngestionState.RECEIVED
        normalized = {k.lower(): v for k, v in headers.items()}

        try:
            body = json.loads(raw_body or b'null')
        except ValueError:
            body = raw_body.decode('utf-8', errors='replace')
        entry = self.webhook_log.record(normalized, body, outcome=state.value)

        state = IngestionState.SIGNATURE_CHECK
        if not verify_signature(raw_body, normalized.get(SIGNATURE_HEADER), self.webhook_secret):
            _logger.warning("Invalid webhook signature — rejected")
            return self._finish(entry, IngestionState.REJECTED, 400, {'ok': False, 'error': 'Invalid signature'})

        if isinstance(body, str):
            _logger.warning("Webhook body is not valid JSON — rejected")
            return self._finish(entry, IngestionState.REJECTED, 400, {'ok': False, 'error': 'Invalid JSON body'})

        state = IngestionState.FILTER
        envelope = decode_envelope(body)
        decision = sale_filter.evaluate(envelope, self.checkbox_session.cashier_id)

        if not decision.accepted:
            return self._finish(
                entry, IngestionState.IGNORED, 200,
                {'ok': True, 'ignored': True, 'reason': decision.reason},
                reason=decision.reason,
            )

        receipt = decision.receipt
        _logger.info(f"Processing SELL receipt id={receipt.id} fiscal={receipt.fiscal_code}")
        return self._finish(entry, state, 200, {'ok': True}, receipt=receipt)

    @staticmethod
    def _finish(entry, state, status_code, body, reason=None, receipt=None) -> WebhookResponse:
        entry['outcome'] = 'ACCEPTED' if receipt is not None else state.value
        entry['reason'] = reason
        return WebhookResponse(state=state, status_code=status_code, body=body, receipt=receipt)

    def process(self, receipt: Receipt) -> IngestionState:
        """
        Parte asíncrona: resolver líneas y crear el pedido

        Nunca lanza: cualquier error queda registrado y el estado es FAILED.
        """
        state = IngestionState.RESOLVE
        try:
            resolved = []
            for item in receipt.goods:
                line = self.resolver.resolve_line(item)
                if line is not None:
                    resolved.append(line)

            state = IngestionState.BUILD
            result: OrderResult = self.builder.submit(receipt, resolved)

            state = IngestionState.SUBMITTED
            _logger.info(f"Receipt {receipt.id} processed: {result.status}")
            return state

        except Exception as e:
            _logger.error(f"Error processing receipt {receipt.id} during {state.value}: {e}", exc_info=True)
            return IngestionState.FAILED
