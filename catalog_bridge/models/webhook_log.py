# -*- coding: utf-8 -*-
"""
Registro en memoria de las últimas llamadas al webhook
Permite inspeccionar los payloads reales que envía Checkbox
"""

import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class WebhookLog:
    """
    Buffer circular de eventos de webhook (el más reciente primero)

    No persiste nada: se pierde al reiniciar el proceso.
    """

    def __init__(self, max_entries: int = 20):
        self.max_entries = max_entries
        self._entries = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(
        self,
        headers: Dict[str, Any],
        body: Any,
        outcome: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Registra una llamada entrante

        Args:
            headers: Headers HTTP de la petición
            body: Cuerpo decodificado (o texto crudo si no era JSON)
            outcome: Estado final de la ingesta (ACCEPTED, IGNORED, ...)
            reason: Motivo del descarte, si aplica

        Returns:
            dict: La entrada registrada (mutable hasta conocer el resultado)
        """
        entry = {
            'ts': datetime.now(timezone.utc).isoformat(),
            'headers': dict(headers),
            'body': body,
            'outcome': outcome,
            'reason': reason,
        }
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._entries)
