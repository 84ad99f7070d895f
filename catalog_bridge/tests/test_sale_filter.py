# -*- coding: utf-8 -*-
"""
Tests para la decodificación de notificaciones y el filtro de ventas
"""

from catalog_bridge.models.receipt import EnvelopeShape, decode_envelope
from catalog_bridge.services import sale_filter

CASHIER_ID = 'cashier-uuid-1'


class TestDecodeEnvelope:

    def test_receipt_key(self, receipt_data):
        """Test: {"receipt": {...}}"""
        envelope = decode_envelope({'receipt': receipt_data()})

        assert envelope.shape == EnvelopeShape.RECEIPT_KEY
        assert envelope.receipt.id == 'receipt-uuid-1'
        assert envelope.receipt.cashier_id == CASHIER_ID

    def test_callback_with_data(self, receipt_data):
        """Test: {"callback": "RECEIPT", "data": {...}}"""
        envelope = decode_envelope({'callback': 'RECEIPT', 'data': receipt_data()})

        assert envelope.shape == EnvelopeShape.CALLBACK_DATA
        assert envelope.callback == 'RECEIPT'
        assert envelope.receipt.total_sum == 3998

    def test_callback_body(self, receipt_data):
        """Test: Campos del recibo en la raíz junto a notification_type"""
        envelope = decode_envelope({'notification_type': 'receipt.created', **receipt_data()})

        assert envelope.shape == EnvelopeShape.CALLBACK_BODY
        assert envelope.receipt.goods[0].quantity == 2000

    def test_unrecognized(self):
        """Test: Otros cuerpos no se reconocen"""
        assert decode_envelope({'callback': 'shift.opened'}).shape == EnvelopeShape.UNRECOGNIZED
        assert decode_envelope([1, 2]).shape == EnvelopeShape.UNRECOGNIZED
        assert decode_envelope(None).receipt is None

    def test_invalid_receipt_object(self):
        """Test: Objeto de recibo sin id"""
        envelope = decode_envelope({'receipt': {'type': 'SELL'}})

        assert envelope.shape == EnvelopeShape.RECEIPT_KEY
        assert envelope.receipt is None
        assert 'invalid receipt object' in envelope.error

    def test_defaults(self):
        """Test: Valores nulos se normalizan"""
        envelope = decode_envelope({'receipt': {
            'id': 77,
            'total_sum': None,
            'goods': [{'good_id': 5, 'good': None, 'quantity': None}],
        }})

        receipt = envelope.receipt
        assert receipt.id == '77'
        assert receipt.total_sum == 0
        assert receipt.goods[0].good_id == '5'
        assert receipt.goods[0].quantity == 1000
        assert receipt.goods[0].good.code is None
        assert receipt.cashier_id is None


class TestSaleFilter:

    def _evaluate(self, body, cashier_id=CASHIER_ID):
        return sale_filter.evaluate(decode_envelope(body), cashier_id)

    def test_accepts_pos_sale(self, receipt_data):
        """Test: Venta SELL con mercancía del catálogo y mismo cajero"""
        decision = self._evaluate({'receipt': receipt_data()})

        assert decision.accepted
        assert decision.receipt.id == 'receipt-uuid-1'

    def test_accepts_lowercase_type(self, receipt_data):
        """Test: El tipo no distingue mayúsculas"""
        assert self._evaluate({'receipt': receipt_data(type='sell')}).accepted

    def test_rejects_unrecognized(self):
        """Test: Sin recibo reconocible"""
        decision = self._evaluate({'callback': 'shift.closed'})

        assert not decision.accepted
        assert decision.reason == 'no receipt object found'

    def test_rejects_return(self, receipt_data):
        """Test: Devoluciones se ignoran"""
        decision = self._evaluate({'receipt': receipt_data(type='RETURN')})

        assert not decision.accepted
        assert decision.reason == 'receipt.type=RETURN'

    def test_rejects_fiscalization_echo(self, receipt_data):
        """Test: Recibo con order_id es la fiscalización de un pedido de KeyCRM"""
        decision = self._evaluate({'receipt': receipt_data(order_id=1234)})

        assert not decision.accepted
        assert decision.reason == 'fiscalization receipt for order 1234'

    def test_rejects_goods_outside_catalog(self, receipt_data):
        """Test: Todas las líneas sin good_id"""
        goods = [{'good_id': None, 'good': {'code': 'A1'}}, {'good': {'name': 'Free text'}}]
        decision = self._evaluate({'receipt': receipt_data(goods=goods)})

        assert not decision.accepted
        assert 'good_id null' in decision.reason

    def test_accepts_mixed_goods(self, receipt_data):
        """Test: Basta una línea del catálogo"""
        goods = [{'good_id': None, 'good': {'code': 'A1'}}, {'good_id': 'g2', 'good': {'code': 'B2'}}]
        assert self._evaluate({'receipt': receipt_data(goods=goods)}).accepted

    def test_rejects_other_cashier(self, receipt_data):
        """Test: Otro cajero"""
        decision = self._evaluate({'receipt': receipt_data(shift={'cashier': {'id': 'other-cashier'}})})

        assert not decision.accepted
        assert decision.reason == 'cashier mismatch: other-cashier'

    def test_unknown_cashier_is_accepted(self, receipt_data):
        """Test: Sin cajero conocido en el recibo o en la sesión no se filtra"""
        assert self._evaluate({'receipt': receipt_data(shift=None)}).accepted
        assert self._evaluate({'receipt': receipt_data()}, cashier_id=None).accepted

    def test_guard_order(self, receipt_data):
        """Test: La primera guarda que coincide decide el motivo"""
        decision = self._evaluate({'receipt': receipt_data(type='RETURN', order_id=1)})

        assert decision.reason == 'receipt.type=RETURN'
