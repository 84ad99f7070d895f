# -*- coding: utf-8 -*-
"""
Configuración del bridge KeyCRM ⇄ Checkbox
Lee variables de entorno (con soporte de archivo .env)
"""

import os
import logging
from typing import List, Optional

from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

load_dotenv()


REQUIRED_VARS = [
    'KEYCRM_API_KEY',
    'KEYCRM_SOURCE_ID',
    'CHECKBOX_CASHIER_LOGIN',
    'CHECKBOX_CASHIER_PASSWORD',
    'CHECKBOX_LICENSE_KEY',
    'SYNC_SECRET',
]


class ConfigurationError(Exception):
    """Faltan variables de entorno obligatorias"""
    pass


def _optional_int(raw: Optional[str]) -> Optional[int]:
    raw = (raw or '').strip()
    return int(raw) if raw else None


class Settings:
    """
    Parámetros de ejecución del bridge

    Todos los valores se leen del entorno en el momento de construir la
    instancia; los tests construyen su propio Settings con un entorno
    parcheado.
    """

    def __init__(self, environ=None) -> None:
        env = os.environ if environ is None else environ
        self._env = env

        # ========== KeyCRM ==========
        self.keycrm_base_url = env.get('KEYCRM_BASE_URL', 'https://openapi.keycrm.app/v1')
        self.keycrm_api_key = env.get('KEYCRM_API_KEY', '')
        self.keycrm_source_id = _optional_int(env.get('KEYCRM_SOURCE_ID'))
        self.keycrm_payment_method_id = int(env.get('KEYCRM_PAYMENT_METHOD_ID') or 2)
        self.keycrm_order_status_id = _optional_int(env.get('KEYCRM_ORDER_STATUS_ID'))
        self.keycrm_buyer_id = _optional_int(env.get('KEYCRM_BUYER_ID'))
        self.keycrm_buyer_email = env.get('KEYCRM_BUYER_EMAIL', '').strip()
        # ~54 req/min, por debajo del límite de 60 req/min de KeyCRM
        self.keycrm_page_delay = float(env.get('KEYCRM_PAGE_DELAY') or 1.1)

        # ========== Checkbox ==========
        self.checkbox_base_url = env.get('CHECKBOX_BASE_URL', 'https://api.checkbox.ua/api/v1')
        self.checkbox_cashier_login = env.get('CHECKBOX_CASHIER_LOGIN', '')
        self.checkbox_cashier_password = env.get('CHECKBOX_CASHIER_PASSWORD', '')
        self.checkbox_license_key = env.get('CHECKBOX_LICENSE_KEY', '')
        self.checkbox_webhook_secret = env.get('CHECKBOX_WEBHOOK_SECRET', '').strip()
        self.checkbox_tax_codes = self._split_csv(env.get('CHECKBOX_TAX_CODES', ''))

        # ========== Pedidos ==========
        self.order_update_delay = float(env.get('ORDER_UPDATE_DELAY') or 5)

        # ========== HTTP ==========
        self.api_timeout = int(env.get('API_TIMEOUT') or 30)
        self.api_max_retries = int(env.get('API_MAX_RETRIES') or 3)

        # ========== Servicio ==========
        self.sync_secret = env.get('SYNC_SECRET', '')
        self.public_url = (env.get('PUBLIC_URL') or env.get('RENDER_EXTERNAL_URL') or '').rstrip('/')
        self.port = int(env.get('PORT') or 3000)
        self.log_level = env.get('LOG_LEVEL', 'INFO').upper()

    @staticmethod
    def _split_csv(raw: str) -> List[str]:
        parts = [p.strip() for p in (raw or '').split(',')]
        return [p for p in parts if p]

    @property
    def webhook_url(self) -> Optional[str]:
        """URL pública del receptor de webhooks, si se conoce"""
        if not self.public_url:
            return None
        return f"{self.public_url}/webhook/checkbox"

    @property
    def deferred_order_update(self) -> bool:
        """True si tras crear el pedido hay que fijar estado y cliente"""
        return self.keycrm_order_status_id is not None and self.keycrm_buyer_id is not None

    def missing_vars(self) -> List[str]:
        return [key for key in REQUIRED_VARS if not self._env.get(key)]

    def validate(self):
        """
        Verifica que estén definidas todas las variables obligatorias

        Raises:
            ConfigurationError: Si falta alguna variable
        """
        missing = self.missing_vars()
        if missing:
            message = "Missing required environment variables:\n  " + "\n  ".join(missing)
            _logger.error(message)
            raise ConfigurationError(message)


settings = Settings()
