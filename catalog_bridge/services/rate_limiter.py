# -*- coding: utf-8 -*-
"""
Rate Limiter - Control de tasa de peticiones
Implementa algoritmo Token Bucket para respetar el límite de KeyCRM
(60 peticiones por minuto)
"""

import time
import threading
import logging

_logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Controlador de tasa de peticiones usando Token Bucket Algorithm

    Funcionamiento:
    - Bucket tiene capacidad máxima = rate
    - Se generan 'rate' tokens cada 'per_seconds' segundos
    - Cada petición consume 1 token
    - Si no hay tokens disponibles, se espera

    Con rate=1 el limitador equivale a una pausa fija entre peticiones:

        limiter = RateLimiter.from_interval(1.1)
        for page in pages:
            with limiter:
                fetch(page)
    """

    def __init__(self, rate: int = 1, per_seconds: float = 1.0):
        """
        Inicializa el rate limiter

        Args:
            rate: Número de peticiones permitidas
            per_seconds: Ventana de tiempo en segundos
        """
        self.rate = rate
        self.per_seconds = per_seconds

        self.tokens = float(rate)
        self.max_tokens = float(rate)

        self.last_refill = time.monotonic()

        # Lock para thread-safety (las tareas de webhook corren en threads)
        self.lock = threading.Lock()

        _logger.info(
            f"RateLimiter initialized: {rate} requests per {per_seconds} seconds"
        )

    @classmethod
    def from_interval(cls, seconds: float) -> 'RateLimiter':
        """Limitador de una petición cada `seconds` segundos"""
        return cls(rate=1, per_seconds=seconds)

    def _refill_tokens(self):
        """
        Rellena el bucket con tokens según el tiempo transcurrido
        """
        now = time.monotonic()
        elapsed = now - self.last_refill

        tokens_to_add = elapsed * (self.rate / self.per_seconds)
        self.tokens = min(self.max_tokens, self.tokens + tokens_to_add)
        self.last_refill = now

    def _wait_time(self) -> float:
        """
        Calcula el tiempo de espera necesario para obtener un token

        Returns:
            Segundos a esperar (0 si hay tokens disponibles)
        """
        if self.tokens >= 1.0:
            return 0.0

        time_per_token = self.per_seconds / self.rate
        return (1.0 - self.tokens) * time_per_token

    def wait_if_needed(self):
        """
        Espera si es necesario para respetar el rate limit

        Thread-safe: puede ser llamado concurrentemente
        """
        with self.lock:
            self._refill_tokens()

            wait_time = self._wait_time()

            if wait_time > 0:
                _logger.debug(f"Rate limit reached, waiting {wait_time:.3f}s")
                time.sleep(wait_time)
                self._refill_tokens()

            # Tras la espera puede quedar un residuo < 1 por redondeo del reloj
            self.tokens = max(0.0, self.tokens - 1.0)

    def __enter__(self):
        self.wait_if_needed()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False
