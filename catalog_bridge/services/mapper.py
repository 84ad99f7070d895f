# -*- coding: utf-8 -*-
"""
Conversión de datos entre KeyCRM y Checkbox
Derivación del `code`, payload de mercancía y detección de cambios
"""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from ..models.catalog import CatalogUnit
from ..models.receipt import ReceiptItem

# Longitud máxima del campo `code` en Checkbox
CODE_MAX_LENGTH = 150

_NON_WORD = re.compile(r'[^\w\s-]', re.ASCII)
_SEPARATORS = re.compile(r'[\s_]+', re.ASCII)
_EDGE_HYPHENS = re.compile(r'^-+|-+$')


def slugify(value: str) -> str:
    """
    Slug simple: minúsculas, sin caracteres especiales, separado por guiones

    >>> slugify('Blue Mug #2!')
    'blue-mug-2'
    """
    value = value.lower()
    value = _NON_WORD.sub('', value)
    value = _SEPARATORS.sub('-', value)
    return _EDGE_HYPHENS.sub('', value)


def derive_code(unit: CatalogUnit) -> str:
    """
    Deriva el `code` de Checkbox para una unidad de KeyCRM

    Prioridad: SKU → código de barras → slug del nombre (o `product-<id>`).

    Args:
        unit: Producto u oferta de KeyCRM

    Returns:
        str: Valor a usar como `code` en Checkbox
    """
    if unit.sku and unit.sku.strip():
        return unit.sku.strip()
    if unit.barcode and unit.barcode.strip():
        return unit.barcode.strip()
    return slugify(unit.name or f"product-{unit.id}")[:CODE_MAX_LENGTH].strip('-')


def display_name(unit: CatalogUnit) -> str:
    return unit.name or f"Product {unit.id}"


def price_in_minor_units(price) -> int:
    """Precio decimal (UAH) a kopeks enteros, redondeo half-up"""
    amount = price if isinstance(price, Decimal) else Decimal(str(price or 0))
    return int((amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def to_catalog_good(
    unit: CatalogUnit,
    product_id: Optional[int],
    is_offer: bool,
    group_id: Optional[str] = None,
    tax_codes: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Construye el payload de `POST /goods` / `PUT /goods/{id}`

    Args:
        unit: Producto u oferta de KeyCRM
        product_id: ID del producto padre (para external_id)
        is_offer: True si la unidad es una oferta
        group_id: UUID del grupo de Checkbox, si se resolvió
        tax_codes: Letras de impuesto configuradas ([] = sin impuestos)

    Returns:
        dict: Payload de mercancía para Checkbox
    """
    external_id = f"keycrm_offer:{unit.id}" if is_offer else f"keycrm_product:{product_id}"

    payload = {
        'name': display_name(unit),
        'code': derive_code(unit),
        'price': price_in_minor_units(unit.price),
        'type': 'PRODUCT',
        'is_weight': False,
        'tax_codes': list(tax_codes or []),
        'external_id': external_id,
    }

    if unit.barcode and unit.barcode.strip():
        payload['barcode'] = unit.barcode.strip()

    if group_id:
        payload['group_id'] = group_id

    return payload


def needs_update(existing_good: Dict[str, Any], unit: CatalogUnit) -> bool:
    """
    Indica si la mercancía de Checkbox difiere de la unidad de KeyCRM

    Compara el precio ya redondeado a kopeks (entero) y el nombre.
    """
    return (
        existing_good.get('price') != price_in_minor_units(unit.price)
        or existing_good.get('name') != display_name(unit)
    )


def existing_group_id(existing_good: Dict[str, Any]) -> Optional[str]:
    """UUID del grupo asignado a una mercancía de Checkbox"""
    group = existing_good.get('group')
    if isinstance(group, dict) and group.get('id'):
        return str(group['id'])
    value = existing_good.get('group_id')
    return str(value) if value else None


def to_order_product(
    item: ReceiptItem,
    offer: Optional[Dict[str, Any]],
    line_total: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Convierte una línea del recibo en una línea de pedido de KeyCRM

    Precio unitario, por orden de preferencia: precio de la mercancía en
    el recibo (kopeks), precio de la oferta de KeyCRM (UAH), total de la
    línea dividido por la cantidad.

    Args:
        item: Línea del recibo de Checkbox
        offer: Oferta de KeyCRM resuelta (o None)
        line_total: Total de la línea en kopeks si el recibo no lo trae
            por línea (recibos de una sola línea)

    Returns:
        dict: {sku, name, price, quantity}
    """
    good = item.good
    offer = offer or {}
    product = offer.get('product') or {}
    quantity = Decimal(item.quantity) / 1000

    if good.price is not None:
        price = Decimal(good.price) / 100
    elif offer.get('price') not in (None, ''):
        price = Decimal(str(offer['price']))
    else:
        total = item.total_sum if item.total_sum is not None else (line_total or 0)
        price = (Decimal(total) / 100 / quantity) if quantity else Decimal('0')

    return {
        'sku': offer.get('sku') or good.code,
        'name': good.name or product.get('name') or 'Unknown',
        'price': float(price.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)),
        'quantity': float(quantity),
    }
