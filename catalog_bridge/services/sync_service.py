# -*- coding: utf-8 -*-
"""
Servicio de Sincronización de Catálogo KeyCRM → Checkbox
Lógica principal de reconciliación de productos y ofertas
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from ..models.catalog import CatalogUnit
from .api_client import APIClientError
from .group_resolver import GroupResolver
from .mapper import derive_code, existing_group_id, needs_update, to_catalog_good

_logger = logging.getLogger(__name__)


class SyncError(Exception):
    """
    Fallo que aborta la sincronización completa

    Attributes:
        summary: Resumen parcial acumulado hasta el fallo
    """

    def __init__(self, message: str, summary: Dict[str, Any]):
        super().__init__(message)
        self.summary = summary


def _is_already_exists(error: APIClientError) -> bool:
    return error.is_conflict or 'already exist' in error.detail_message.lower()


class ProductSyncService:
    """
    Reconciliación del catálogo de KeyCRM con las mercancías de Checkbox

    Responsabilidades:
    - Enumerar productos y ofertas de KeyCRM
    - Derivar el `code` (clave compartida) de cada unidad
    - Resolver grupos de Checkbox a partir de las categorías
    - Crear, actualizar u omitir cada mercancía (idempotente)

    Las unidades se procesan de forma secuencial para respetar el límite
    de peticiones de KeyCRM.
    """

    def __init__(self, keycrm, checkbox, group_resolver: GroupResolver, tax_codes: Optional[List[str]] = None):
        self.keycrm = keycrm
        self.checkbox = checkbox
        self.group_resolver = group_resolver
        self.tax_codes = list(tax_codes or [])

    def sync_products(self) -> Dict[str, Any]:
        """
        Sincroniza todo el catálogo de KeyCRM hacia Checkbox

        Flujo principal:
        1. Cargar categorías de KeyCRM y grupos de Checkbox (best-effort)
        2. Obtener productos y expandir los que tienen ofertas
        3. Para cada unidad: validar, buscar por code, crear o actualizar

        Returns:
            dict: Resumen {created, updated, skipped, errors, ...}

        Raises:
            SyncError: Si falla la enumeración de productos de KeyCRM o
                cualquier paso fuera del procesamiento de una unidad
        """
        _logger.info("=" * 80)
        _logger.info("STARTING PRODUCT SYNC")
        _logger.info("=" * 80)

        start_time = time.time()

        summary = {
            'created': 0,
            'updated': 0,
            'skipped': 0,
            'errors': [],
            'sync_batch_id': str(uuid.uuid4()),
        }

        try:
            # 1. Categorías y grupos para la asignación de grupos
            categories = self._load_categories()

            # 2. Unidades sincronizables
            units = self._collect_units(categories, summary)
            _logger.info(f"Found {len(units)} syncable units in KeyCRM")

            # 3. Upsert secuencial
            for index, unit in enumerate(units, start=1):
                _logger.debug(f"Processing unit {index}/{len(units)}: {unit.name}")
                try:
                    self._sync_unit(unit, summary)
                except APIClientError:
                    raise
                except Exception as e:
                    _logger.error(f"Error processing unit {unit.id}: {str(e)}", exc_info=True)
                    summary['errors'].append({'id': unit.id, 'reason': f"Unexpected error: {e}"})

        except Exception as e:
            _logger.error(f"Fatal error during sync: {str(e)}", exc_info=True)
            summary['elapsed_sec'] = round(time.time() - start_time, 1)
            raise SyncError(str(e), summary) from e

        summary['elapsed_sec'] = round(time.time() - start_time, 1)

        _logger.info("=" * 80)
        _logger.info("PRODUCT SYNC COMPLETED")
        _logger.info("=" * 80)
        _logger.info(f"Created:  {summary['created']}")
        _logger.info(f"Updated:  {summary['updated']}")
        _logger.info(f"Skipped:  {summary['skipped']}")
        _logger.info(f"Errors:   {len(summary['errors'])}")
        _logger.info(f"Time:     {summary['elapsed_sec']}s")
        _logger.info(f"Batch ID: {summary['sync_batch_id']}")
        _logger.info("=" * 80)

        return summary

    def _load_categories(self) -> Dict[int, Dict[str, Any]]:
        """
        Carga categorías de KeyCRM y grupos de Checkbox

        Un fallo aquí no es fatal: la ejecución continúa sin grupos.
        """
        self.group_resolver.invalidate()

        try:
            categories = self.keycrm.get_product_categories()
            self.group_resolver.prime(self.checkbox.get_groups())
        except APIClientError as e:
            _logger.warning(f"Could not load categories/groups, skipping group assignment: {e}")
            self.group_resolver.disable()
            return {}

        _logger.info(
            f"Loaded {len(categories)} KeyCRM categories, "
            f"{self.group_resolver.cached_groups} Checkbox groups"
        )
        return categories

    def _collect_units(self, categories: Dict[int, Dict[str, Any]], summary: Dict[str, Any]) -> List[CatalogUnit]:
        """
        Lista plana de unidades: productos simples y ofertas de variantes

        Raises:
            APIClientError: Si falla el listado de productos (fatal)
        """
        units = []

        for product in self.keycrm.get_all_products():
            try:
                if not product.get('has_offers'):
                    units.append(CatalogUnit.from_product(product, categories))
                    continue

                offers = self.keycrm.get_offers_by_product(product['id'])
                units.extend(CatalogUnit.from_offer(offer, product, categories) for offer in offers)
            except APIClientError as e:
                _logger.error(f"Could not fetch offers of product {product.get('id')}: {e}")
                summary['errors'].append({
                    'id': product.get('id'),
                    'reason': f"Failed to fetch offers: {e.detail_message}",
                })
            except Exception as e:
                _logger.error(f"Invalid KeyCRM product {product.get('id')}: {e}")
                summary['errors'].append({'id': product.get('id'), 'reason': f"Invalid record: {e}"})

        return units

    def _sync_unit(self, unit: CatalogUnit, summary: Dict[str, Any]) -> str:
        """
        Sincroniza una sola unidad

        Garantiza idempotencia mediante:
        - Búsqueda por `code` antes de crear
        - Comparación de precio/nombre/grupo antes de actualizar
        - Conflicto al crear interpretado como "ya existe"

        Returns:
            str: Operación realizada (created, updated, skipped, error)
        """
        if not unit.name:
            summary['errors'].append({'id': unit.id, 'reason': 'Missing name, skipped'})
            return 'error'

        code = derive_code(unit)

        if not code or not code.strip():
            summary['errors'].append({'id': unit.id, 'reason': 'Empty code (no SKU/barcode/name), skipped'})
            summary['skipped'] += 1
            return 'skipped'

        try:
            existing = self.checkbox.get_good_by_code(code)
        except APIClientError as e:
            msg = f"Error checking code \"{code}\": {e.detail_message}"
            _logger.error(msg)
            summary['errors'].append({'id': unit.id, 'code': code, 'reason': msg})
            return 'error'

        group_id = self.group_resolver.resolve_group_id(unit.category)
        payload = to_catalog_good(unit, unit.parent_product_id, unit.is_offer, group_id, self.tax_codes)

        if not existing:
            return self._create_good(unit, code, payload, summary)

        group_changed = group_id is not None and group_id != existing_group_id(existing)
        if not needs_update(existing, unit) and not group_changed:
            summary['skipped'] += 1
            return 'skipped'

        try:
            self.checkbox.update_good(existing['id'], payload)
        except APIClientError as e:
            msg = f"Failed to update \"{code}\": {e.detail_message}"
            _logger.error(msg)
            summary['errors'].append({'id': unit.id, 'code': code, 'reason': msg})
            return 'error'

        summary['updated'] += 1
        _logger.info(f"Updated: {code} — {unit.name}{f' (group {group_id})' if group_id else ''}")
        return 'updated'

    def _create_good(self, unit: CatalogUnit, code: str, payload: Dict[str, Any], summary: Dict[str, Any]) -> str:
        try:
            self.checkbox.create_good(payload)
        except APIClientError as e:
            if _is_already_exists(e):
                # La búsqueda por code no siempre refleja el catálogo real
                _logger.warning(f"Good \"{code}\" already exists in Checkbox, skipping")
                summary['skipped'] += 1
                return 'skipped'

            msg = f"Failed to create \"{code}\": {e.detail_message}"
            _logger.error(msg)
            summary['errors'].append({
                'id': unit.id,
                'code': code,
                'reason': msg,
                'status': e.status_code,
            })
            return 'error'

        summary['created'] += 1
        group_id = payload.get('group_id')
        _logger.info(f"Created: {code} — {unit.name}{f' (group {group_id})' if group_id else ''}")
        return 'created'
