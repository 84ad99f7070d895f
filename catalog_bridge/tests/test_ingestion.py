# -*- coding: utf-8 -*-
"""
Tests del pipeline de ingesta de ventas (webhook de Checkbox)
"""

import hashlib
import hmac
import json
from unittest.mock import Mock

from catalog_bridge.models.receipt import Receipt
from catalog_bridge.models.webhook_log import WebhookLog
from catalog_bridge.services.ingestion import (
    IngestionState,
    SaleIngestionPipeline,
    verify_signature,
)
from catalog_bridge.services.order_builder import OrderBuilder, OrderResult
from catalog_bridge.services.product_resolver import ProductResolver


def _sign(raw, secret):
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def _pipeline(keycrm, checkbox_session, secret=None):
    return SaleIngestionPipeline(
        checkbox_session,
        ProductResolver(keycrm),
        OrderBuilder(keycrm, source_id=7, sleep=Mock()),
        webhook_secret=secret,
        webhook_log=WebhookLog(max_entries=5),
    )


class TestVerifySignature:

    def test_no_secret_skips_check(self):
        """Test: Sin secreto configurado no se verifica"""
        assert verify_signature(b'{}', None, None)

    def test_valid_signature(self):
        """Test: Firma HMAC-SHA256 hex correcta"""
        raw = b'{"receipt": {}}'
        assert verify_signature(raw, _sign(raw, 'whsec'), 'whsec')

    def test_invalid_signatures(self):
        """Test: Firma ausente, errónea o mal formada"""
        raw = b'{"receipt": {}}'
        assert not verify_signature(raw, None, 'whsec')
        assert not verify_signature(raw, _sign(raw, 'other'), 'whsec')
        assert not verify_signature(raw, 'not-hex', 'whsec')


class TestSaleIngestionPipeline:

    def test_accepts_and_processes_sale(self, keycrm, checkbox_session, receipt_data):
        """Test: Venta aceptada → 200 inmediato y pedido en process()"""
        pipeline = _pipeline(keycrm, checkbox_session)
        raw = json.dumps({'receipt': receipt_data()}).encode()

        response = pipeline.receive(raw, {'Content-Type': 'application/json'})

        assert response.status_code == 200
        assert response.body == {'ok': True}
        assert response.accepted
        keycrm.create_order.assert_not_called()

        state = pipeline.process(response.receipt)

        assert state == IngestionState.SUBMITTED
        keycrm.create_order.assert_called_once()
        assert pipeline.webhook_log.entries()[0]['outcome'] == 'ACCEPTED'

    def test_ignored_event_is_200(self, keycrm, checkbox_session, receipt_data):
        """Test: Eventos ignorados responden éxito con el motivo"""
        pipeline = _pipeline(keycrm, checkbox_session)
        raw = json.dumps({'receipt': receipt_data(order_id=99)}).encode()

        response = pipeline.receive(raw, {})

        assert response.status_code == 200
        assert response.state == IngestionState.IGNORED
        assert response.body == {'ok': True, 'ignored': True, 'reason': 'fiscalization receipt for order 99'}
        assert not response.accepted
        entry = pipeline.webhook_log.entries()[0]
        assert entry['outcome'] == 'IGNORED'
        assert entry['reason'] == 'fiscalization receipt for order 99'

    def test_signature_rejected(self, keycrm, checkbox_session, receipt_data):
        """Test: Firma inválida → 400"""
        pipeline = _pipeline(keycrm, checkbox_session, secret='whsec')
        raw = json.dumps({'receipt': receipt_data()}).encode()

        response = pipeline.receive(raw, {'X-Request-Signature': _sign(raw, 'wrong')})

        assert response.status_code == 400
        assert response.state == IngestionState.REJECTED
        assert not response.accepted

    def test_signature_accepted(self, keycrm, checkbox_session, receipt_data):
        """Test: La firma se calcula sobre el cuerpo crudo"""
        pipeline = _pipeline(keycrm, checkbox_session, secret='whsec')
        raw = json.dumps({'receipt': receipt_data()}, indent=2).encode()

        response = pipeline.receive(raw, {'x-request-signature': _sign(raw, 'whsec')})

        assert response.accepted

    def test_invalid_json(self, keycrm, checkbox_session):
        """Test: Cuerpo no JSON → 400 y queda en el log como texto"""
        pipeline = _pipeline(keycrm, checkbox_session)

        response = pipeline.receive(b'not json', {})

        assert response.status_code == 400
        assert pipeline.webhook_log.entries()[0]['body'] == 'not json'

    def test_empty_body_is_ignored(self, keycrm, checkbox_session):
        """Test: Cuerpo vacío no es un recibo"""
        response = _pipeline(keycrm, checkbox_session).receive(b'', {})

        assert response.status_code == 200
        assert response.body['ignored'] is True

    def test_process_failure_is_logged(self, keycrm, checkbox_session, receipt_data):
        """Test: Un error en la parte asíncrona no se propaga"""
        keycrm.get_offer_by_sku.side_effect = RuntimeError("boom")
        pipeline = _pipeline(keycrm, checkbox_session)
        receipt = Receipt.model_validate(receipt_data())

        assert pipeline.process(receipt) == IngestionState.FAILED
        keycrm.create_order.assert_not_called()

    def test_process_skips_unresolvable_lines(self, keycrm, checkbox_session, receipt_data):
        """Test: Líneas sin code ni nombre se omiten del pedido"""
        builder = Mock()
        builder.submit.return_value = OrderResult(status='skipped')
        pipeline = SaleIngestionPipeline(checkbox_session, ProductResolver(keycrm), builder)
        receipt = Receipt.model_validate(receipt_data(goods=[{'good_id': 'g1', 'good': {'barcode': '1'}}]))

        assert pipeline.process(receipt) == IngestionState.SUBMITTED
        assert builder.submit.call_args.args[1] == []

    def test_log_is_bounded(self, keycrm, checkbox_session):
        """Test: El log conserva solo las últimas llamadas, la más reciente primero"""
        pipeline = _pipeline(keycrm, checkbox_session)

        for n in range(7):
            pipeline.receive(json.dumps({'n': n}).encode(), {})

        entries = pipeline.webhook_log.entries()
        assert len(entries) == 5
        assert entries[0]['body'] == {'n': 6}
