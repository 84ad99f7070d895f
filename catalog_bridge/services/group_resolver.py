# -*- coding: utf-8 -*-
"""
Resolución de categorías de KeyCRM a grupos de Checkbox
Soporta un nivel de anidamiento: grupo y subgrupo
"""

import logging
import threading
from typing import Dict, Iterable, Optional, Tuple

from ..models.catalog import CatalogGroup, CategoryRef, group_key

_logger = logging.getLogger(__name__)


class GroupResolver:
    """
    Busca o crea el grupo de Checkbox correspondiente a una categoría

    Mantiene una caché (nombre normalizado, padre) -> grupo que se
    carga una vez por ejecución a partir del listado completo de grupos
    y se invalida al inicio de cada sincronización. Los grupos creados
    se insertan en la caché bajo lock antes de devolverse, de modo que
    dos unidades de la misma categoría nunca crean el grupo dos veces.
    """

    def __init__(self, checkbox):
        self.checkbox = checkbox
        self.enabled = True
        self._cache: Optional[Dict[Tuple[str, str], CatalogGroup]] = None
        self._lock = threading.RLock()

    def invalidate(self):
        """Vacía la caché y reactiva la resolución (inicio de ejecución)"""
        with self._lock:
            self._cache = None
            self.enabled = True

    def disable(self):
        """Desactiva la asignación de grupos durante esta ejecución"""
        with self._lock:
            self.enabled = False

    def prime(self, groups: Iterable[CatalogGroup]):
        """Carga la caché con los grupos ya existentes en Checkbox"""
        with self._lock:
            self._cache = {}
            for group in groups:
                self._cache.setdefault(group.cache_key, group)
            _logger.debug(f"Group cache primed with {len(self._cache)} groups")

    @property
    def cached_groups(self) -> int:
        return len(self._cache or {})

    def resolve_group_id(self, category: Optional[CategoryRef]) -> Optional[str]:
        """
        UUID del grupo de Checkbox para una categoría (best-effort)

        Args:
            category: Categoría de la unidad (con su padre, si lo tiene)

        Returns:
            str: UUID del grupo, o None si no hay categoría, la resolución
            está desactivada o falla la consulta/creación
        """
        if category is None or not self.enabled:
            return None

        try:
            parent_id = None
            parent = category.parent
            if parent is not None:
                parent_id = self._get_or_create(parent.name, None).id

            return self._get_or_create(category.name, parent_id).id

        except Exception as e:
            _logger.warning(f"Could not resolve group for category {category.id} ({category.name}): {e}")
            return None

    def _get_or_create(self, name: str, parent_id: Optional[str]) -> CatalogGroup:
        key = group_key(name, parent_id)

        with self._lock:
            if self._cache is None:
                self.prime(self.checkbox.get_groups())

            group = self._cache.get(key)
            if group is not None:
                return group

            _logger.info(f"Creating Checkbox {'sub' if parent_id else ''}group: \"{name}\"")
            group = self.checkbox.create_group(name.strip(), parent_id)
            self._cache[key] = group
            return group
