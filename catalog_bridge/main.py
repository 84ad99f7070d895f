# -*- coding: utf-8 -*-
"""
Servicio HTTP del bridge KeyCRM ⇄ Checkbox

Endpoints:
    GET  /health                 Health check
    GET  /sync-products?secret=  Sincroniza el catálogo KeyCRM → Checkbox
    POST /webhook/checkbox       Recibe ventas de Checkbox → pedidos KeyCRM
    GET  /webhook/checkbox/log   Últimas llamadas al webhook
    GET  /debug-checkbox         Muestra grupos y mercancías crudos de Checkbox
    GET  /reset-webhook          Re-registra el webhook y devuelve el secreto
"""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import APIRouter, BackgroundTasks, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .config import ConfigurationError, Settings, settings as default_settings
from .models.webhook_log import WebhookLog
from .services.api_client import APIClientError
from .services.checkbox_client import CheckboxClient, CheckboxSession
from .services.group_resolver import GroupResolver
from .services.ingestion import SaleIngestionPipeline
from .services.keycrm_client import KeyCRMClient
from .services.order_builder import OrderBuilder
from .services.product_resolver import ProductResolver
from .services.sync_service import ProductSyncService, SyncError

_logger = logging.getLogger(__name__)


class Bridge:
    """Contenedor de los servicios compartidos por todas las peticiones"""

    def __init__(self, settings: Settings, keycrm: KeyCRMClient, checkbox: CheckboxClient):
        self.settings = settings
        self.keycrm = keycrm
        self.checkbox = checkbox
        self.webhook_log = WebhookLog()
        self.group_resolver = GroupResolver(checkbox)
        self.sync_service = ProductSyncService(
            keycrm,
            checkbox,
            self.group_resolver,
            tax_codes=settings.checkbox_tax_codes,
        )
        self.pipeline = SaleIngestionPipeline(
            checkbox.session,
            ProductResolver(keycrm),
            OrderBuilder.from_settings(keycrm, settings),
            webhook_secret=settings.checkbox_webhook_secret or None,
            webhook_log=self.webhook_log,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> 'Bridge':
        return cls(
            settings,
            KeyCRMClient.from_settings(settings),
            CheckboxClient.from_settings(settings, CheckboxSession()),
        )


# ========== Arranque ==========
def _log_reference_data(bridge: Bridge):
    """Muestra fuentes, estados y métodos de pago de KeyCRM (no fatal)"""
    try:
        sources = bridge.keycrm.get_order_sources()
        statuses = bridge.keycrm.get_order_statuses()
        payment_methods = bridge.keycrm.get_payment_methods()
    except APIClientError as e:
        _logger.error(f"Failed to fetch KeyCRM reference data: {e.detail_message}")
        return

    _logger.info("KeyCRM order sources: " + ", ".join(f"{s.get('id')}: {s.get('name')}" for s in sources))
    _logger.info("KeyCRM order statuses: " + ", ".join(f"{s.get('id')}: {s.get('name')}" for s in statuses))
    _logger.info("KeyCRM payment methods: " + ", ".join(f"{m.get('id')}: {m.get('name')}" for m in payment_methods))


def _ensure_webhook(bridge: Bridge):
    """Registra el webhook en Checkbox si la URL pública cambió (no fatal)"""
    expected_url = bridge.settings.webhook_url
    if not expected_url:
        _logger.warning("PUBLIC_URL not set — skipping auto webhook registration.")
        return

    try:
        current = bridge.checkbox.get_webhook() or {}
        if current.get('url') == expected_url:
            _logger.info("Checkbox webhook already set to correct URL.")
            return

        result = bridge.checkbox.register_webhook(expected_url)
    except APIClientError as e:
        _logger.warning(f"Could not auto-register Checkbox webhook: {e.detail_message}")
        return

    if result.get('secret'):
        _logger.warning(
            f"Checkbox webhook registered! URL: {expected_url} "
            f"SECRET (save this as CHECKBOX_WEBHOOK_SECRET): {result['secret']}"
        )
    else:
        _logger.info(f"Checkbox webhook updated → {expected_url}")


def startup(bridge: Bridge):
    """
    Secuencia de arranque

    1. Validar variables de entorno (fatal)
    2. Iniciar sesión en Checkbox (fatal)
    3. Mostrar datos de referencia de KeyCRM
    4. Registrar el webhook si es necesario

    Raises:
        SystemExit: Si falta configuración o falla el sign-in
    """
    try:
        bridge.settings.validate()
    except ConfigurationError as e:
        raise SystemExit(1) from e

    try:
        bridge.checkbox.sign_in()
    except APIClientError as e:
        _logger.error(f"Failed to sign in to Checkbox: {e.detail_message}")
        raise SystemExit(1) from e

    _log_reference_data(bridge)
    _ensure_webhook(bridge)

    base_url = bridge.settings.public_url or f"http://localhost:{bridge.settings.port}"
    _logger.info(f"catalog-bridge ready — health: {base_url}/health")


# ========== Rutas ==========
router = APIRouter()


def _bridge(request: Request) -> Bridge:
    return request.app.state.bridge


def _authorized(bridge: Bridge, secret: Optional[str]) -> bool:
    expected = bridge.settings.sync_secret
    if not expected or not secret:
        return False
    return hmac.compare_digest(expected.encode(), secret.encode())


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={'error': 'Unauthorized: invalid secret'})


@router.get("/")
def root():
    """Información del servicio"""
    return {
        'service': 'catalog-bridge',
        'endpoints': {
            'health': '/health',
            'sync_products': '/sync-products?secret=<SYNC_SECRET>',
            'webhook': 'POST /webhook/checkbox',
            'webhook_log': '/webhook/checkbox/log?secret=<SYNC_SECRET>',
        },
    }


@router.get("/health")
def health_check():
    return {'status': 'ok'}


@router.get("/sync-products")
def sync_products(request: Request, secret: Optional[str] = Query(None)):
    """
    Descarga productos/ofertas de KeyCRM y los sincroniza con Checkbox

    Responde 200 con el resumen aunque fallen unidades individuales y
    500 (resumen + error) solo si la ejecución se aborta.
    """
    bridge = _bridge(request)
    if not _authorized(bridge, secret):
        return _unauthorized()

    try:
        return bridge.sync_service.sync_products()
    except SyncError as e:
        return JSONResponse(status_code=500, content={'error': str(e), **e.summary})
    except Exception as e:
        _logger.error(f"Unexpected error during sync: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={'error': str(e)})


@router.post("/webhook/checkbox")
async def checkbox_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Receptor de notificaciones de Checkbox

    Responde de inmediato; el pedido se crea en segundo plano.
    """
    bridge = _bridge(request)
    raw_body = await request.body()

    response = bridge.pipeline.receive(raw_body, request.headers)
    if response.accepted:
        background_tasks.add_task(bridge.pipeline.process, response.receipt)

    return JSONResponse(status_code=response.status_code, content=response.body)


@router.get("/webhook/checkbox/log")
def webhook_log(request: Request, secret: Optional[str] = Query(None)):
    bridge = _bridge(request)
    if not _authorized(bridge, secret):
        return _unauthorized()

    events = bridge.webhook_log.entries()
    return {'count': len(events), 'events': events}


@router.get("/debug-checkbox")
def debug_checkbox(request: Request, secret: Optional[str] = Query(None)):
    """Estructura cruda de los primeros grupos y mercancías de Checkbox"""
    bridge = _bridge(request)
    if not _authorized(bridge, secret):
        return _unauthorized()

    try:
        groups = bridge.checkbox.get_groups()
        goods = bridge.checkbox.get_goods(offset=0, limit=2)
    except APIClientError as e:
        return JSONResponse(status_code=500, content={'error': e.payload or str(e)})

    return {'groups': [g.model_dump() for g in groups[:5]], 'goods': goods}


@router.get("/reset-webhook")
def reset_webhook(request: Request, secret: Optional[str] = Query(None)):
    """Borra y vuelve a registrar el webhook; devuelve el nuevo secreto"""
    bridge = _bridge(request)
    if not _authorized(bridge, secret):
        return _unauthorized()

    webhook_url = bridge.settings.webhook_url
    if not webhook_url:
        return JSONResponse(status_code=400, content={'error': 'PUBLIC_URL not set'})

    try:
        bridge.checkbox.delete_webhook()
    except APIClientError as e:
        _logger.info(f"No webhook deleted: {e.detail_message}")

    try:
        result = bridge.checkbox.register_webhook(webhook_url)
    except APIClientError as e:
        _logger.error(f"reset-webhook failed: {e.detail_message}")
        return JSONResponse(status_code=500, content={'error': e.payload or str(e)})

    new_secret = result.get('secret') or result.get('webhook_secret')
    if new_secret:
        _logger.warning(f"New webhook secret: {new_secret} — save it as CHECKBOX_WEBHOOK_SECRET")

    return {
        'ok': True,
        'url': webhook_url,
        'secret': new_secret,
        'message': 'Save this secret as CHECKBOX_WEBHOOK_SECRET',
    }


# ========== Aplicación ==========
def create_app(bridge: Optional[Bridge] = None, run_startup: bool = True) -> FastAPI:
    """
    Construye la aplicación FastAPI

    Args:
        bridge: Servicios ya construidos (tests); por defecto desde el entorno
        run_startup: Ejecutar la secuencia de arranque al iniciar
    """
    bridge = bridge or Bridge.from_settings(default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_startup:
            startup(bridge)
        yield
        bridge.keycrm.api.close()
        bridge.checkbox.api.close()

    app = FastAPI(
        title="KeyCRM ⇄ Checkbox bridge",
        description="Sincronización de catálogo y ventas entre KeyCRM y Checkbox",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.bridge = bridge
    app.include_router(router)
    return app


app = create_app()


def run():
    logging.basicConfig(
        level=default_settings.log_level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    uvicorn.run(
        "catalog_bridge.main:app",
        host="0.0.0.0",
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
