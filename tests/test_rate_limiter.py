import pytest

from app import rate_limiter
from app.rate_limiter import check_rate_limit


@pytest.fixture(autouse=True)
def clear_cache():
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()


def test_memory_only_limit():
    results = [check_rate_limit("booking:user:u1", 3, 60) for _ in range(4)]

    assert [allowed for allowed, _, _ in results] == [True, True, True, False]
    assert results[-1][1] == 3
    assert 0 < results[-1][2] <= 60


def test_keys_are_counted_separately():
    for _ in range(2):
        check_rate_limit("booking:user:u1", 2, 60)

    assert check_rate_limit("booking:user:u1", 2, 60)[0] is False
    assert check_rate_limit("booking:user:u2", 2, 60)[0] is True


def test_window_reset(monkeypatch):
    clock = {"now": 1_000}
    monkeypatch.setattr(rate_limiter.time, "time", lambda: clock["now"])

    assert check_rate_limit("k", 1, 10)[0] is True
    assert check_rate_limit("k", 1, 10)[0] is False

    clock["now"] += 11
    assert check_rate_limit("k", 1, 10)[0] is True
