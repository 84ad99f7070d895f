# -*- coding: utf-8 -*-
"""
Tests para GroupResolver
"""

from unittest.mock import Mock

from catalog_bridge.models.catalog import CatalogGroup, CategoryRef
from catalog_bridge.services.api_client import APIClientError
from catalog_bridge.services.group_resolver import GroupResolver


def _checkbox(existing=None):
    checkbox = Mock()
    checkbox.get_groups.return_value = existing or []
    created = iter(range(1, 100))
    checkbox.create_group.side_effect = lambda name, parent_id=None: CatalogGroup(
        id=f"new-{next(created)}", name=name, parent_id=parent_id,
    )
    return checkbox


class TestGroupResolver:

    def test_no_category(self):
        """Test: Sin categoría no hay grupo ni llamadas"""
        checkbox = _checkbox()
        resolver = GroupResolver(checkbox)

        assert resolver.resolve_group_id(None) is None
        checkbox.get_groups.assert_not_called()

    def test_existing_top_level_group(self):
        """Test: Coincidencia por nombre sin distinguir mayúsculas"""
        checkbox = _checkbox([CatalogGroup(id='g1', name='Kitchen ')])
        resolver = GroupResolver(checkbox)

        group_id = resolver.resolve_group_id(CategoryRef(id=1, name='kitchen'))

        assert group_id == 'g1'
        checkbox.create_group.assert_not_called()

    def test_creates_parent_and_child(self):
        """Test: Crea grupo padre y subgrupo bajo él"""
        checkbox = _checkbox()
        resolver = GroupResolver(checkbox)

        group_id = resolver.resolve_group_id(CategoryRef(id=2, name='Mugs', parent_id=1, parent_name='Kitchen'))

        assert group_id == 'new-2'
        assert checkbox.create_group.call_args_list[0].args == ('Kitchen', None)
        assert checkbox.create_group.call_args_list[1].args == ('Mugs', 'new-1')

    def test_created_groups_are_cached(self):
        """Test: Dos unidades de la misma categoría crean el grupo una sola vez"""
        checkbox = _checkbox()
        resolver = GroupResolver(checkbox)
        category = CategoryRef(id=3, name='Plates')

        first = resolver.resolve_group_id(category)
        second = resolver.resolve_group_id(category)

        assert first == second
        assert checkbox.create_group.call_count == 1
        assert checkbox.get_groups.call_count == 1

    def test_same_name_different_parent(self):
        """Test: El mismo nombre bajo otro padre es otro grupo"""
        checkbox = _checkbox([
            CatalogGroup(id='p1', name='Kitchen'),
            CatalogGroup(id='p2', name='Garden'),
            CatalogGroup(id='c1', name='Other', parent_id='p1'),
        ])
        resolver = GroupResolver(checkbox)

        group_id = resolver.resolve_group_id(CategoryRef(id=9, name='Other', parent_id=8, parent_name='Garden'))

        assert group_id == 'new-1'
        checkbox.create_group.assert_called_once_with('Other', 'p2')

    def test_failure_returns_none(self):
        """Test: Un fallo de Checkbox no es fatal"""
        checkbox = _checkbox()
        checkbox.create_group.side_effect = APIClientError("Client error: 400", status_code=400)
        resolver = GroupResolver(checkbox)

        assert resolver.resolve_group_id(CategoryRef(id=3, name='Plates')) is None

    def test_disable_and_invalidate(self):
        """Test: Desactivado no resuelve; invalidate lo reactiva y recarga"""
        checkbox = _checkbox([CatalogGroup(id='g1', name='Plates')])
        resolver = GroupResolver(checkbox)
        resolver.disable()

        assert resolver.resolve_group_id(CategoryRef(id=3, name='Plates')) is None

        resolver.invalidate()
        assert resolver.resolve_group_id(CategoryRef(id=3, name='Plates')) == 'g1'
        assert resolver.cached_groups == 1

    def test_prime_keeps_first_duplicate(self):
        """Test: Con grupos duplicados se usa el primero"""
        resolver = GroupResolver(_checkbox())
        resolver.prime([CatalogGroup(id='a', name='Mugs'), CatalogGroup(id='b', name='mugs')])

        assert resolver.resolve_group_id(CategoryRef(id=1, name='Mugs')) == 'a'
