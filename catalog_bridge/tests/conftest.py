# -*- coding: utf-8 -*-
"""
Fixtures compartidas por los tests del bridge
"""

from unittest.mock import Mock

import pytest

from catalog_bridge.config import Settings
from catalog_bridge.services.checkbox_client import CheckboxSession


CASHIER_ID = 'cashier-uuid-1'


@pytest.fixture
def env():
    return {
        'KEYCRM_API_KEY': 'keycrm-key',
        'KEYCRM_SOURCE_ID': '7',
        'CHECKBOX_CASHIER_LOGIN': 'cashier',
        'CHECKBOX_CASHIER_PASSWORD': 'secret-pass',
        'CHECKBOX_LICENSE_KEY': 'license-key',
        'SYNC_SECRET': 'sync-secret',
        'PUBLIC_URL': 'https://bridge.example.com/',
    }


@pytest.fixture
def settings(env):
    return Settings(environ=env)


@pytest.fixture
def checkbox_session():
    session = CheckboxSession()
    session.token = 'jwt-token'
    session.cashier_id = CASHIER_ID
    return session


@pytest.fixture
def keycrm():
    """Mock de KeyCRMClient sin coincidencias por defecto"""
    client = Mock()
    client.get_offer_by_sku.return_value = None
    client.get_offer_by_barcode.return_value = None
    client.get_product_by_name.return_value = None
    client.get_product_categories.return_value = {}
    client.get_all_products.return_value = []
    client.create_order.return_value = {'id': 501}
    client.get_order_sources.return_value = []
    client.get_order_statuses.return_value = []
    client.get_payment_methods.return_value = []
    return client


@pytest.fixture
def checkbox(checkbox_session):
    """Mock de CheckboxClient con catálogo vacío"""
    client = Mock()
    client.session = checkbox_session
    client.cashier_id = checkbox_session.cashier_id
    client.get_groups.return_value = []
    client.get_good_by_code.return_value = None
    client.create_good.return_value = {'id': 'good-uuid'}
    client.get_webhook.return_value = None
    client.register_webhook.return_value = {}
    return client


def make_receipt(**overrides):
    """Recibo SELL de una línea vendido por el cajero del bridge"""
    receipt = {
        'id': 'receipt-uuid-1',
        'fiscal_code': 'FC-0001',
        'type': 'SELL',
        'total_sum': 3998,
        'created_at': '2026-01-02T10:15:30.123+02:00',
        'goods': [{
            'good_id': 'good-uuid-1',
            'good': {'code': 'MUG-BLUE', 'name': 'Mug'},
            'quantity': 2000,
        }],
        'shift': {'cashier': {'id': CASHIER_ID}},
    }
    receipt.update(overrides)
    return receipt


@pytest.fixture
def receipt_data():
    return make_receipt
