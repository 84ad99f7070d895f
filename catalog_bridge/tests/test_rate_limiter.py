# -*- coding: utf-8 -*-
"""
Tests para RateLimiter
Verifica control de tasa de peticiones
"""

import pytest
import time
import threading

from catalog_bridge.services.rate_limiter import RateLimiter


class TestRateLimiter:
    """Test suite para RateLimiter"""

    def test_initialization(self):
        """Test: RateLimiter se inicializa correctamente"""
        limiter = RateLimiter(rate=10, per_seconds=1.0)

        assert limiter.rate == 10
        assert limiter.per_seconds == 1.0
        assert limiter.tokens == 10.0
        assert limiter.max_tokens == 10.0

    def test_from_interval(self):
        """Test: Un token cada intervalo"""
        limiter = RateLimiter.from_interval(1.1)

        assert limiter.rate == 1
        assert limiter.per_seconds == 1.1

    def test_single_request_no_wait(self):
        """Test: Primera petición no espera"""
        limiter = RateLimiter(rate=10)

        start = time.time()
        limiter.wait_if_needed()
        elapsed = time.time() - start

        assert elapsed < 0.1
        assert limiter.tokens == pytest.approx(9.0, abs=0.01)

    def test_rate_limiting_enforced(self):
        """Test: Rate limit es respetado"""
        limiter = RateLimiter(rate=5, per_seconds=1.0)

        for _ in range(5):
            limiter.wait_if_needed()

        start = time.time()
        limiter.wait_if_needed()
        elapsed = time.time() - start

        # ~0.2s para generar 1 token a 5 tokens/s
        assert 0.15 < elapsed < 0.3

    def test_fixed_interval_between_pages(self):
        """Test: Con rate=1 la segunda petición espera el intervalo"""
        limiter = RateLimiter.from_interval(0.2)

        start = time.time()
        with limiter:
            pass
        with limiter:
            pass
        elapsed = time.time() - start

        assert 0.15 < elapsed < 0.35

    def test_token_refill(self):
        """Test: Tokens se rellenan con el tiempo"""
        limiter = RateLimiter(rate=10)

        for _ in range(5):
            limiter.wait_if_needed()

        assert limiter.tokens == pytest.approx(5.0, abs=0.01)

        time.sleep(0.5)
        limiter._refill_tokens()

        assert 9.5 <= limiter.tokens <= 10.0

    def test_context_manager(self):
        """Test: Context manager consume un token y no suprime excepciones"""
        limiter = RateLimiter(rate=10)

        with pytest.raises(ValueError):
            with limiter:
                raise ValueError("boom")

        assert limiter.tokens == pytest.approx(9.0, abs=0.01)

    def test_thread_safety(self):
        """Test: RateLimiter es thread-safe"""
        limiter = RateLimiter(rate=10)
        results = []

        def worker():
            for _ in range(3):
                limiter.wait_if_needed()
                results.append(1)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 9
        assert limiter.tokens >= 0.0


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
