from __future__ import annotations

from fastapi.testclient import TestClient

from crmdesk.core.rate_limit import FixedWindowRateLimiter
from crmdesk.models.entities import User


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_fixed_window_limits_each_caller_separately() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=clock)

    assert limiter.allow("u1")
    assert limiter.allow("u1")
    assert not limiter.allow("u1")
    assert limiter.allow("u2")


def test_fixed_window_resets_on_next_window() -> None:
    clock = FakeClock(10.0)
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)

    assert limiter.allow("u1")
    assert not limiter.allow("u1")
    clock.now = 61.0
    assert limiter.allow("u1")


def test_reset_clears_counters() -> None:
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=FakeClock())

    assert limiter.allow("u1")
    limiter.reset()
    assert limiter.allow("u1")


def test_report_generation_is_rate_limited(
    client: TestClient,
    rate_limiter: FixedWindowRateLimiter,
    alice: User,
    bob: User,
) -> None:
    rate_limiter.limit = 2
    body = {"startDate": "2026-01-01", "endDate": "2026-02-01"}

    for _ in range(2):
        response = client.post("/api/v1/reports/financial-summary", headers={"X-User-Id": str(alice.id)}, json=body)
        assert response.status_code == 200

    response = client.post("/api/v1/reports/financial-summary", headers={"X-User-Id": str(alice.id)}, json=body)
    assert response.status_code == 429
    assert response.json() == {"success": False, "error": "Too many requests. Please wait before trying again."}

    response = client.post("/api/v1/reports/financial-summary", headers={"X-User-Id": str(bob.id)}, json=body)
    assert response.status_code == 200
