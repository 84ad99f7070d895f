# -*- coding: utf-8 -*-
"""
Cliente HTTP base para KeyCRM y Checkbox
Incluye reintentos con backoff exponencial y manejo robusto de errores
"""

import requests
import time
import logging
from typing import Optional, Dict, Any

_logger = logging.getLogger(__name__)


class APIClientError(Exception):
    """
    Error de comunicación con una API externa

    Attributes:
        status_code: Código HTTP de la respuesta (None si no hubo respuesta)
        payload: Cuerpo de la respuesta decodificado (dict) o texto crudo
    """

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def detail_message(self) -> str:
        """Mensaje de error devuelto por la API, o el mensaje propio"""
        if isinstance(self.payload, dict) and self.payload.get('message'):
            return str(self.payload['message'])
        return str(self)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def is_conflict(self) -> bool:
        # 409 se interpreta como "ya existe" sin inspeccionar el cuerpo
        return self.status_code == 409


class APIClient:
    """
    Cliente HTTP robusto para comunicación con API externa

    Características:
    - Reintentos automáticos con backoff exponencial
    - Timeout configurable
    - Logging estructurado
    - Manejo de errores HTTP
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 3,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Inicializa el cliente API

        Args:
            base_url: URL base de la API (ej: https://openapi.keycrm.app/v1)
            timeout: Timeout en segundos para cada petición
            max_retries: Número máximo de intentos
            headers: Headers adicionales para todas las peticiones
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()

        # Headers por defecto
        self.session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': 'catalog-bridge/1.0',
        })
        if headers:
            self.session.headers.update(headers)

        _logger.info(f"APIClient initialized: {base_url} (timeout={timeout}s, retries={max_retries})")

    def _calculate_backoff(self, attempt: int) -> float:
        """
        Calcula tiempo de espera con backoff exponencial

        Args:
            attempt: Número de intento actual (1-based)

        Returns:
            Segundos a esperar antes del siguiente intento
        """
        # Intento 1: 1s, Intento 2: 2s, Intento 3: 4s, ...
        base_delay = 2 ** (attempt - 1)

        return min(base_delay, 60)

    def _should_retry(self, response: requests.Response) -> bool:
        """
        Determina si el código de respuesta admite reintento

        Args:
            response: Respuesta HTTP recibida

        Returns:
            True para 5xx, 408 y 429; False para el resto
        """
        if 500 <= response.status_code < 600:
            return True

        return response.status_code in (408, 429)

    @staticmethod
    def _decode_error(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def _make_request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Optional[Dict[str, Any]]:
        """
        Realiza una petición HTTP con reintentos

        Args:
            method: Método HTTP (GET, POST, PUT, PATCH, DELETE)
            endpoint: Endpoint de la API (ej: /products)
            **kwargs: Argumentos adicionales para requests (params, json, etc.)

        Returns:
            Diccionario con la respuesta JSON o None si no hay cuerpo

        Raises:
            APIClientError: Si la API responde con error o fallan todos los intentos
        """
        url = f"{self.base_url}{endpoint}"
        attempt = 0
        last_exception = None
        last_status = None
        last_payload = None

        while attempt < self.max_retries:
            attempt += 1

            try:
                _logger.debug(f"[Attempt {attempt}/{self.max_retries}] {method} {url}")

                response = self.session.request(
                    method=method,
                    url=url,
                    timeout=self.timeout,
                    **kwargs
                )

                _logger.debug(
                    f"Response: {response.status_code} "
                    f"(time: {response.elapsed.total_seconds():.2f}s)"
                )

                if 200 <= response.status_code < 300:
                    try:
                        return response.json()
                    except ValueError:
                        if response.status_code == 204:
                            return None
                        _logger.warning(f"Invalid JSON response from {url}")
                        return None

                if self._should_retry(response):
                    last_status = response.status_code
                    last_payload = self._decode_error(response)
                    if attempt >= self.max_retries:
                        break

                    backoff = self._calculate_backoff(attempt)

                    _logger.warning(
                        f"Request failed with status {response.status_code}, "
                        f"retrying in {backoff}s... (attempt {attempt}/{self.max_retries})"
                    )

                    time.sleep(backoff)
                    continue

                # Error del cliente (4xx excepto 408/429): no reintentar
                payload = self._decode_error(response)
                error_msg = f"Client error: {response.status_code} - {response.text}"
                if response.status_code == 404:
                    _logger.debug(error_msg)
                else:
                    _logger.error(f"{method} {url} -> {error_msg}")
                raise APIClientError(error_msg, status_code=response.status_code, payload=payload)

            except requests.exceptions.Timeout as e:
                last_exception = e
                _logger.warning(f"Request timeout, retrying... (attempt {attempt}/{self.max_retries})")

                if attempt < self.max_retries:
                    time.sleep(self._calculate_backoff(attempt))
                    continue

            except requests.exceptions.ConnectionError as e:
                last_exception = e
                _logger.warning(
                    f"Connection error, retrying... (attempt {attempt}/{self.max_retries})"
                )

                if attempt < self.max_retries:
                    time.sleep(self._calculate_backoff(attempt))
                    continue

            except requests.exceptions.RequestException as e:
                last_exception = e
                _logger.error(f"Request exception: {str(e)}")

                if attempt < self.max_retries:
                    time.sleep(self._calculate_backoff(attempt))
                    continue

        error_msg = f"Request failed after {self.max_retries} attempts"
        if last_exception:
            error_msg += f": {str(last_exception)}"
        elif last_status:
            error_msg += f": status {last_status}"

        _logger.error(error_msg)
        raise APIClientError(error_msg, status_code=last_status, payload=last_payload)

    def get(self, endpoint: str, params: Optional[Dict] = None) -> Optional[Dict[str, Any]]:
        return self._make_request('GET', endpoint, params=params)

    def post(self, endpoint: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._make_request('POST', endpoint, json=data)

    def put(self, endpoint: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._make_request('PUT', endpoint, json=data)

    def patch(self, endpoint: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._make_request('PATCH', endpoint, json=data)

    def delete(self, endpoint: str) -> Optional[Dict[str, Any]]:
        return self._make_request('DELETE', endpoint)

    def close(self):
        """Cierra la sesión HTTP"""
        self.session.close()
        _logger.info("APIClient session closed")
