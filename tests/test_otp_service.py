"""Test module for the OTP store."""

import threading

import fakeredis
import pytest

from utils.otp_service import MemoryOTPStore, RedisOTPStore, generate_code


EMAIL = "ada@example.com"


@pytest.fixture(params=["memory", "redis"])
def store(request, otp_store):
    """Each backing, run through the same contract."""
    if request.param == "memory":
        return otp_store
    return RedisOTPStore(fakeredis.FakeRedis(decode_responses=True), ttl_seconds=300)


def test_generate_code_is_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6
        assert 100000 <= int(code) <= 999999


def test_verify_consumes_code(otp_store):
    code = otp_store.issue(EMAIL)

    assert otp_store.verify(EMAIL, code) is True
    assert otp_store.verify(EMAIL, code) is False
    assert len(otp_store) == 0


def test_blank_code_rejected(otp_store):
    otp_store.issue(EMAIL)

    assert otp_store.verify(EMAIL, "") is False
    assert otp_store.verify(EMAIL, None) is False
    assert len(otp_store) == 1


def test_code_valid_until_ttl(otp_store, clock):
    code = otp_store.issue(EMAIL)
    clock.advance(300)

    assert otp_store.verify(EMAIL, code) is True


def test_expired_code_rejected_and_removed(otp_store, clock):
    code = otp_store.issue(EMAIL)
    clock.advance(301)

    assert otp_store.verify(EMAIL, code) is False
    assert len(otp_store) == 0
    assert otp_store.verify(EMAIL, code) is False


def test_reissue_resets_expiry(otp_store, clock):
    otp_store.issue(EMAIL)
    clock.advance(200)
    code = otp_store.issue(EMAIL)
    clock.advance(200)

    assert otp_store.verify(EMAIL, code) is True


def test_sweep_removes_only_expired(otp_store, clock):
    otp_store.issue("old@example.com")
    clock.advance(250)
    fresh = otp_store.issue("new@example.com")
    clock.advance(100)

    assert otp_store.sweep() == 1
    assert len(otp_store) == 1
    assert otp_store.verify("new@example.com", fresh) is True


def test_concurrent_verify_succeeds_once():
    store = MemoryOTPStore(ttl_seconds=300)
    code = store.issue(EMAIL)
    results = []
    barrier = threading.Barrier(16)

    def worker():
        barrier.wait()
        results.append(store.verify(EMAIL, code))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1


def test_contract_unknown_identifier(store):
    assert store.verify(EMAIL, "123456") is False


def test_contract_single_use(store):
    code = store.issue(EMAIL)

    assert store.verify(EMAIL, code) is True
    assert store.verify(EMAIL, code) is False


def test_contract_wrong_code_keeps_record(store):
    code = store.issue(EMAIL)
    wrong = "000000" if code != "000000" else "111111"

    assert store.verify(EMAIL, wrong) is False
    assert store.verify(EMAIL, code) is True


def test_contract_blank_code(store):
    code = store.issue(EMAIL)

    assert store.verify(EMAIL, "  ") is False
    assert store.verify(EMAIL, code) is True


def test_contract_supersession(store):
    first = store.issue(EMAIL)
    second = store.issue(EMAIL)
    while second == first:
        second = store.issue(EMAIL)

    assert store.verify(EMAIL, first) is False
    assert store.verify(EMAIL, second) is True


def test_contract_identifiers_independent(store):
    a = store.issue("a@example.com")
    b = store.issue("b@example.com")

    assert store.verify("b@example.com", b) is True
    assert store.verify("a@example.com", a) is True


def test_redis_store_sets_ttl():
    client = fakeredis.FakeRedis(decode_responses=True)
    store = RedisOTPStore(client, ttl_seconds=300)
    code = store.issue(EMAIL)

    assert client.get(f"otp:{EMAIL}") == code
    assert 0 < client.ttl(f"otp:{EMAIL}") <= 300


def test_redis_store_rejects_after_expiry():
    client = fakeredis.FakeRedis(decode_responses=True)
    store = RedisOTPStore(client, ttl_seconds=300)
    code = store.issue(EMAIL)
    # A non-positive TTL removes the key, as when the TTL runs out.
    client.expire(f"otp:{EMAIL}", 0)

    assert store.verify(EMAIL, code) is False
    assert store.verify(EMAIL, code) is False


def test_redis_store_sweep_is_noop():
    store = RedisOTPStore(fakeredis.FakeRedis(decode_responses=True))
    store.issue(EMAIL)

    assert store.sweep() == 0
