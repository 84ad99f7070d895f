# -*- coding: utf-8 -*-
"""
Modelos de recibos de Checkbox y decodificación de notificaciones webhook

Checkbox puede enviar el recibo con distintas envolturas:
    {"receipt": {...}}
    {"callback": "receipt...", "data": {...}}
    {"notification_type": "receipt...", ...campos del recibo...}
Cada forma se reconoce con una regla; lo demás queda como UNRECOGNIZED.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


class ReceiptGood(BaseModel):
    """Mercancía referenciada por una línea del recibo"""
    code: Optional[str] = None
    barcode: Optional[str] = None
    name: Optional[str] = None
    price: Optional[int] = None

    @field_validator('code', 'barcode', 'name', mode='before')
    @classmethod
    def _coerce_text(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class ReceiptItem(BaseModel):
    """Línea vendida; quantity en milésimas de unidad (1000 = 1 ud.)"""
    good_id: Optional[str] = None
    good: ReceiptGood = Field(default_factory=ReceiptGood)
    quantity: int = 1000
    total_sum: Optional[int] = None

    @field_validator('good_id', mode='before')
    @classmethod
    def _coerce_id(cls, value):
        return None if value is None else str(value)

    @field_validator('good', mode='before')
    @classmethod
    def _default_good(cls, value):
        return value or {}

    @field_validator('quantity', mode='before')
    @classmethod
    def _default_quantity(cls, value):
        return value or 1000


class Cashier(BaseModel):
    id: Optional[str] = None


class Shift(BaseModel):
    cashier: Optional[Cashier] = None


class Receipt(BaseModel):
    """Recibo de venta de Checkbox (inmutable una vez emitido)"""
    id: str
    fiscal_code: Optional[str] = None
    type: Optional[str] = None
    total_sum: int = 0
    created_at: Optional[str] = None
    goods: List[ReceiptItem] = Field(default_factory=list)
    order_id: Optional[Any] = None
    shift: Optional[Shift] = None

    @field_validator('id', mode='before')
    @classmethod
    def _coerce_id(cls, value):
        return None if value is None else str(value)

    @field_validator('total_sum', mode='before')
    @classmethod
    def _default_total(cls, value):
        return value or 0

    @field_validator('goods', mode='before')
    @classmethod
    def _default_goods(cls, value):
        return value or []

    @property
    def cashier_id(self) -> Optional[str]:
        if self.shift and self.shift.cashier and self.shift.cashier.id:
            return str(self.shift.cashier.id)
        return None


class EnvelopeShape(str, Enum):
    RECEIPT_KEY = 'receipt_key'
    CALLBACK_DATA = 'callback_data'
    CALLBACK_BODY = 'callback_body'
    UNRECOGNIZED = 'unrecognized'


class ReceiptEnvelope(BaseModel):
    """Resultado de decodificar una notificación de Checkbox"""
    shape: EnvelopeShape
    callback: str = ''
    raw_receipt: Optional[Dict[str, Any]] = None
    receipt: Optional[Receipt] = None
    error: Optional[str] = None


def _callback_type(body: Dict[str, Any]) -> str:
    value = body.get('callback') or body.get('notification_type') or body.get('type') or ''
    return value if isinstance(value, str) else ''


def _match_receipt_key(body, callback):
    if isinstance(body.get('receipt'), dict):
        return EnvelopeShape.RECEIPT_KEY, body['receipt']
    return None


def _match_callback_data(body, callback):
    if 'receipt' in callback.lower() and isinstance(body.get('data'), dict):
        return EnvelopeShape.CALLBACK_DATA, body['data']
    return None


def _match_callback_body(body, callback):
    if 'receipt' in callback.lower():
        return EnvelopeShape.CALLBACK_BODY, body
    return None


ENVELOPE_RULES = [
    _match_receipt_key,
    _match_callback_data,
    _match_callback_body,
]


def decode_envelope(body: Any) -> ReceiptEnvelope:
    """
    Extrae el recibo de una notificación aplicando las reglas en orden

    Args:
        body: Cuerpo JSON ya decodificado

    Returns:
        ReceiptEnvelope; con receipt=None si ninguna regla reconoce el
        cuerpo o si el objeto encontrado no es un recibo válido
    """
    if not isinstance(body, dict):
        return ReceiptEnvelope(shape=EnvelopeShape.UNRECOGNIZED, error='body is not an object')

    callback = _callback_type(body)

    for rule in ENVELOPE_RULES:
        match = rule(body, callback)
        if match is None:
            continue

        shape, raw = match
        try:
            receipt = Receipt.model_validate(raw)
        except ValidationError as e:
            return ReceiptEnvelope(
                shape=shape,
                callback=callback,
                raw_receipt=raw,
                error=f"invalid receipt object: {e.error_count()} validation error(s)",
            )
        return ReceiptEnvelope(shape=shape, callback=callback, raw_receipt=raw, receipt=receipt)

    return ReceiptEnvelope(shape=EnvelopeShape.UNRECOGNIZED, callback=callback)
