# -*- coding: utf-8 -*-
"""
Cliente de la API de Checkbox (PRRO)
Sesión de cajero, catálogo de mercancías, grupos y registro de webhook
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from ..models.catalog import CatalogGroup
from .api_client import APIClient, APIClientError

_logger = logging.getLogger(__name__)


class CheckboxSession:
    """
    Estado de autenticación compartido por todo el proceso

    Guarda el JWT del cajero y su UUID. Se crea en el arranque; el token
    se invalida con reset() antes de cada nuevo sign-in. El UUID del
    cajero se conserva hasta que `/cashier/me` devuelve uno nuevo.
    """

    def __init__(self):
        self.token: Optional[str] = None
        self.cashier_id: Optional[str] = None
        self.lock = threading.Lock()

    @property
    def authenticated(self) -> bool:
        return self.token is not None

    def reset(self):
        self.token = None


class CheckboxClient:
    """
    Capacidad de lectura/escritura sobre Checkbox

    Cualquier llamada que reciba 401 provoca exactamente un nuevo
    sign-in y un único reintento; un segundo fallo se propaga.
    """

    GROUPS_PAGE_SIZE = 200

    def __init__(
        self,
        api: APIClient,
        login: str,
        password: str,
        session: Optional[CheckboxSession] = None,
    ):
        self.api = api
        self.login = login
        self.password = password
        self.session = session or CheckboxSession()

    @classmethod
    def from_settings(cls, settings, session: Optional[CheckboxSession] = None) -> 'CheckboxClient':
        api = APIClient(
            base_url=settings.checkbox_base_url,
            timeout=settings.api_timeout,
            max_retries=settings.api_max_retries,
            headers={'X-License-Key': settings.checkbox_license_key},
        )
        return cls(
            api,
            login=settings.checkbox_cashier_login,
            password=settings.checkbox_cashier_password,
            session=session,
        )

    @property
    def cashier_id(self) -> Optional[str]:
        return self.session.cashier_id

    # ========== Autenticación ==========
    def sign_in(self) -> str:
        """
        Inicia sesión del cajero y guarda el JWT en la sesión

        Returns:
            str: Token de acceso

        Raises:
            APIClientError: Si Checkbox rechaza las credenciales
        """
        with self.session.lock:
            self.session.reset()
            self.api.session.headers.pop('Authorization', None)

            response = self.api.post('/cashier/signin', data={
                'login': self.login,
                'password': self.password,
            }) or {}
            token = response.get('access_token')
            if not token:
                raise APIClientError("Checkbox sign-in returned no access_token", payload=response)

            self.session.token = token
            self.api.session.headers['Authorization'] = f"Bearer {token}"

            # El sign-in no incluye el UUID del cajero
            try:
                me = self.api.get('/cashier/me') or {}
            except APIClientError as e:
                _logger.warning(f"Could not fetch cashier profile, keeping previous cashier ID: {e}")
            else:
                if me.get('id'):
                    self.session.cashier_id = str(me['id'])

        _logger.info(f"Signed in to Checkbox, JWT cached. Cashier ID: {self.session.cashier_id}")
        return token

    def _call(self, fn: Callable[[], Any]) -> Any:
        if not self.session.authenticated:
            self.sign_in()
        try:
            return fn()
        except APIClientError as e:
            if not e.is_unauthorized:
                raise
            _logger.warning("Checkbox returned 401, signing in again...")
            self.sign_in()
            return fn()

    # ========== Mercancías ==========
    def get_goods(self, offset: int = 0, limit: int = 100) -> Dict[str, Any]:
        return self._call(lambda: self.api.get('/goods', params={'offset': offset, 'limit': limit})) or {}

    def get_good_by_code(self, code: str) -> Optional[Dict[str, Any]]:
        """
        Busca una mercancía por su `code`

        Returns:
            dict: Mercancía encontrada o None si Checkbox responde 404
        """
        def fetch():
            try:
                return self.api.get(f"/goods/by-code/{quote(code, safe='')}")
            except APIClientError as e:
                if e.is_not_found:
                    return None
                raise

        return self._call(fetch)

    def create_good(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._call(lambda: self.api.post('/goods', data=payload)) or {}

    def update_good(self, good_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._call(lambda: self.api.put(f'/goods/{good_id}', data=payload)) or {}

    # ========== Grupos ==========
    def get_groups(self) -> List[CatalogGroup]:
        """Listado completo de grupos de mercancías"""
        groups = []
        offset = 0

        while True:
            response = self._call(lambda: self.api.get('/goods/groups', params={
                'limit': self.GROUPS_PAGE_SIZE,
                'offset': offset,
            })) or {}
            results = response.get('results') or []
            groups.extend(CatalogGroup.from_api(g) for g in results)

            if len(results) < self.GROUPS_PAGE_SIZE:
                return groups
            offset += self.GROUPS_PAGE_SIZE

    def create_group(self, name: str, parent_id: Optional[str] = None) -> CatalogGroup:
        payload = {'name': name}
        if parent_id:
            payload['parent_id'] = parent_id

        response = self._call(lambda: self.api.post('/goods/groups', data=payload)) or {}
        group = CatalogGroup.from_api(response)
        if group.parent_id is None and parent_id:
            group = group.model_copy(update={'parent_id': parent_id})
        return group

    # ========== Webhook ==========
    def get_webhook(self) -> Optional[Dict[str, Any]]:
        """Webhook registrado actualmente, o None si no hay ninguno"""
        def fetch():
            try:
                return self.api.get('/webhook')
            except APIClientError as e:
                if e.status_code in (404, 422):
                    return None
                raise

        return self._call(fetch)

    def register_webhook(self, url: str) -> Dict[str, Any]:
        """
        Registra la URL del webhook

        Returns:
            dict: Respuesta completa; incluye `secret` en el primer registro
        """
        return self._call(lambda: self.api.post('/webhook', data={'url': url})) or {}

    def delete_webhook(self):
        self._call(lambda: self.api.delete('/webhook'))
