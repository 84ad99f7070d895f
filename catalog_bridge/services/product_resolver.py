# -*- coding: utf-8 -*-
"""
Resolución de líneas de recibo de Checkbox a productos de KeyCRM
"""

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..models.receipt import ReceiptItem
from .mapper import to_order_product

_logger = logging.getLogger(__name__)


class ResolvedProduct(BaseModel):
    """Línea resuelta: oferta de KeyCRM (si se encontró) y cómo"""
    item: ReceiptItem
    offer: Optional[Dict[str, Any]] = None
    matched_by: Optional[str] = None

    def to_order_line(self, line_total: Optional[int] = None) -> Dict[str, Any]:
        return to_order_product(self.item, self.offer, line_total)


class ProductResolver:
    """
    Cadena de búsqueda: SKU → código de barras → nombre exacto

    El `code` de la mercancía en Checkbox es el SKU de KeyCRM, así que la
    primera búsqueda resuelve casi todas las líneas.
    """

    def __init__(self, keycrm):
        self.keycrm = keycrm

    def resolve_line(self, item: ReceiptItem) -> Optional[ResolvedProduct]:
        """
        Resuelve una línea del recibo

        Args:
            item: Línea vendida

        Returns:
            ResolvedProduct; None solo si la línea no trae ni code ni
            nombre (se omite del pedido)
        """
        good = item.good

        if good.code:
            offer = self.keycrm.get_offer_by_sku(good.code)
            if offer:
                return ResolvedProduct(item=item, offer=offer, matched_by='sku')

        if good.barcode:
            offer = self.keycrm.get_offer_by_barcode(good.barcode)
            if offer:
                return ResolvedProduct(item=item, offer=offer, matched_by='barcode')

        if good.name:
            product = self.keycrm.get_product_by_name(good.name)
            if product:
                return ResolvedProduct(
                    item=item,
                    offer={'sku': product.get('sku'), 'price': product.get('price'), 'product': product},
                    matched_by='name',
                )

        if not good.code and not good.name:
            _logger.warning(
                f"Cannot identify product: code={good.code}, barcode={good.barcode}, name={good.name}"
            )
            return None

        _logger.info(f"No KeyCRM match for code={good.code} name={good.name}, using receipt data")
        return ResolvedProduct(item=item)
