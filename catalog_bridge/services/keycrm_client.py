# -*- coding: utf-8 -*-
"""
Cliente de la API de KeyCRM
Productos, ofertas, categorías, pedidos y datos de referencia
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

from .api_client import APIClient, APIClientError
from .rate_limiter import RateLimiter

_logger = logging.getLogger(__name__)


class KeyCRMClient:
    """
    Capacidad de lectura/escritura sobre KeyCRM

    Todas las lecturas paginadas respetan el límite de peticiones de
    KeyCRM esperando entre páginas (RateLimiter).
    """

    PAGE_SIZE = 50

    def __init__(self, api: APIClient, limiter: Optional[RateLimiter] = None):
        self.api = api
        self.limiter = limiter or RateLimiter.from_interval(1.1)

    @classmethod
    def from_settings(cls, settings) -> 'KeyCRMClient':
        api = APIClient(
            base_url=settings.keycrm_base_url,
            timeout=settings.api_timeout,
            max_retries=settings.api_max_retries,
            headers={'Authorization': f"Bearer {settings.keycrm_api_key}"},
        )
        return cls(api, RateLimiter.from_interval(settings.keycrm_page_delay))

    # ========== Paginación ==========
    def _paginate(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """
        Recorre todas las páginas de un listado de KeyCRM

        Args:
            endpoint: Endpoint del listado (ej: /products)
            params: Filtros adicionales

        Yields:
            dict: Cada elemento de cada página, en orden
        """
        page = 1
        seen = 0

        while True:
            with self.limiter:
                response = self.api.get(endpoint, params={**(params or {}), 'limit': self.PAGE_SIZE, 'page': page})

            data = (response or {}).get('data') or []
            total = (response or {}).get('total') or 0

            for item in data:
                yield item
            seen += len(data)

            if seen >= total or len(data) < self.PAGE_SIZE:
                return
            page += 1

    # ========== Productos y ofertas ==========
    def get_all_products(self) -> List[Dict[str, Any]]:
        """Todos los productos de KeyCRM (los que tienen ofertas incluidos)"""
        products = list(self._paginate('/products'))
        _logger.info(f"Fetched {len(products)} products from KeyCRM")
        return products

    def get_offers_by_product(self, product_id: int) -> List[Dict[str, Any]]:
        return list(self._paginate('/offers', {'filter[product_id]': product_id}))

    def get_offer_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        """
        Busca una oferta por SKU exacto

        Returns:
            dict: Primera oferta encontrada (con producto incluido) o None
        """
        try:
            with self.limiter:
                response = self.api.get('/offers', params={
                    'filter[sku]': sku,
                    'include': 'product',
                    'limit': 1,
                })
        except APIClientError as e:
            _logger.warning(f"Offer lookup by SKU '{sku}' failed: {e}")
            return None

        data = (response or {}).get('data') or []
        return data[0] if data else None

    def get_offer_by_barcode(self, barcode: str) -> Optional[Dict[str, Any]]:
        """Busca una oferta por código de barras recorriendo todas las páginas"""
        for offer in self._paginate('/offers', {'include': 'product'}):
            if offer.get('barcode') == barcode:
                return offer
        return None

    def get_product_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """Busca un producto por nombre exacto (sin distinguir mayúsculas)"""
        needle = name.strip().lower()
        for product in self._paginate('/products'):
            if (product.get('name') or '').strip().lower() == needle:
                return product
        return None

    def get_product_categories(self) -> Dict[int, Dict[str, Any]]:
        """
        Mapa plano de categorías

        Returns:
            dict: id -> {'id', 'name', 'parent_id'}
        """
        categories = {}
        for category in self._paginate('/products/categories'):
            categories[category['id']] = {
                'id': category['id'],
                'name': category.get('name') or '',
                'parent_id': category.get('parent_id'),
            }
        return categories

    # ========== Pedidos ==========
    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.api.post('/order', data=payload) or {}

    def update_order(self, order_id, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.api.put(f'/order/{order_id}', data=payload) or {}

    # ========== Datos de referencia ==========
    def _reference(self, endpoint: str) -> List[Dict[str, Any]]:
        response = self.api.get(endpoint, params={'limit': 50, 'page': 1})
        return (response or {}).get('data') or []

    def get_payment_methods(self) -> List[Dict[str, Any]]:
        return self._reference('/order/payment-method')

    def get_order_statuses(self) -> List[Dict[str, Any]]:
        return self._reference('/order/status')

    def get_order_sources(self) -> List[Dict[str, Any]]:
        return self._reference('/order/source')
