# -*- coding: utf-8 -*-
"""
Modelos del catálogo: unidades vendibles de KeyCRM y grupos de Checkbox
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class CategoryRef(BaseModel):
    """Categoría de KeyCRM con su padre (si lo tiene)"""
    id: int
    name: str
    parent_id: Optional[int] = None
    parent_name: Optional[str] = None

    @property
    def parent(self) -> Optional['CategoryRef']:
        """Categoría padre como referencia de nivel superior"""
        if self.parent_id is None or not self.parent_name:
            return None
        return CategoryRef(id=self.parent_id, name=self.parent_name)

    @classmethod
    def lookup(cls, category_id, categories: Dict[int, Dict[str, Any]]) -> Optional['CategoryRef']:
        """
        Construye la referencia a partir del mapa plano de categorías

        Args:
            category_id: ID de categoría del producto (puede ser None)
            categories: Mapa id -> {id, name, parent_id}

        Returns:
            CategoryRef o None si la categoría no se conoce
        """
        if not category_id:
            return None
        category = categories.get(category_id)
        if not category:
            return None

        parent_id = category.get('parent_id')
        parent = categories.get(parent_id) if parent_id else None

        return cls(
            id=category['id'],
            name=category['name'],
            parent_id=parent['id'] if parent else None,
            parent_name=parent['name'] if parent else None,
        )


class CatalogUnit(BaseModel):
    """
    Unidad vendible de KeyCRM: producto simple u oferta (variante)

    Snapshot de solo lectura tomado en cada ejecución de sincronización.
    """
    id: int
    name: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    price: Decimal = Decimal('0')
    product_id: Optional[int] = None
    is_offer: bool = False
    category: Optional[CategoryRef] = None
    properties: List[str] = Field(default_factory=list)

    @field_validator('price', mode='before')
    @classmethod
    def _coerce_price(cls, value):
        if value is None or value == '':
            return Decimal('0')
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @field_validator('name', 'sku', 'barcode', mode='before')
    @classmethod
    def _coerce_text(cls, value):
        if value is None:
            return None
        return str(value)

    @property
    def parent_product_id(self) -> int:
        return self.product_id if self.product_id is not None else self.id

    @classmethod
    def from_product(cls, product: Dict[str, Any], categories: Optional[Dict] = None) -> 'CatalogUnit':
        """Unidad a partir de un producto KeyCRM sin variantes"""
        return cls(
            id=product['id'],
            name=product.get('name'),
            sku=product.get('sku'),
            barcode=product.get('barcode'),
            price=product.get('price'),
            product_id=product['id'],
            is_offer=False,
            category=CategoryRef.lookup(product_category_id(product), categories or {}),
        )

    @classmethod
    def from_offer(
        cls,
        offer: Dict[str, Any],
        product: Dict[str, Any],
        categories: Optional[Dict] = None,
    ) -> 'CatalogUnit':
        """
        Unidad a partir de una oferta KeyCRM

        La oferta hereda la categoría del producto padre. El nombre se
        completa con el del producto y, si hay propiedades de variante,
        se le añade el sufijo "— valor1, valor2".
        """
        values = [str(p.get('value')) for p in (offer.get('properties') or []) if isinstance(p, dict)]

        name = offer.get('name') or product.get('name')
        if values:
            name = f"{product.get('name')} — {', '.join(values)}"

        return cls(
            id=offer['id'],
            name=name,
            sku=offer.get('sku'),
            barcode=offer.get('barcode'),
            price=offer.get('price'),
            product_id=product['id'],
            is_offer=True,
            category=CategoryRef.lookup(product_category_id(product), categories or {}),
            properties=values,
        )


def product_category_id(product: Dict[str, Any]) -> Optional[int]:
    """ID de categoría de un producto KeyCRM (campo plano o anidado)"""
    category = product.get('category')
    if product.get('category_id'):
        return product['category_id']
    if isinstance(category, dict):
        return category.get('id')
    return None


class CatalogGroup(BaseModel):
    """Grupo de mercancías de Checkbox (máximo dos niveles)"""
    id: str
    name: str
    parent_id: Optional[str] = None

    @field_validator('id', 'parent_id', mode='before')
    @classmethod
    def _coerce_id(cls, value):
        return None if value is None else str(value)

    @property
    def cache_key(self):
        return group_key(self.name, self.parent_id)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'CatalogGroup':
        parent = data.get('parent_id') or data.get('parent_group_id')
        if not parent and isinstance(data.get('parent'), dict):
            parent = data['parent'].get('id')
        return cls(id=data['id'], name=data.get('name') or '', parent_id=parent)


def group_key(name: str, parent_id: Optional[str]):
    """Clave de unicidad de un grupo: (nombre normalizado, padre o '')"""
    return ((name or '').strip().lower(), parent_id or '')
