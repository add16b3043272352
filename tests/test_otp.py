"""
OTP issuance and verification against a fake Redis.
"""

import pytest

from app.core.exceptions import OtpAttemptsExceeded
from app.services.otp import OTP_ATTEMPTS_PREFIX, OTP_PREFIX, OtpStore, generate_otp


def test_generated_codes_are_six_digits():
    for _ in range(50):
        code = generate_otp()
        assert len(code) == 6 and code.isdigit()
        assert not code.startswith("0")


@pytest.mark.asyncio
async def test_issue_stores_code_with_ttl(kv):
    store = OtpStore(kv, ttl_seconds=300)
    code = await store.issue("a@example.com")

    assert await kv.get(f"{OTP_PREFIX}a@example.com") == code
    ttl = await kv.ttl(f"{OTP_PREFIX}a@example.com")
    assert 0 < ttl <= 300


@pytest.mark.asyncio
async def test_correct_code_verifies_once(kv):
    store = OtpStore(kv)
    code = await store.issue("a@example.com")

    assert await store.verify("a@example.com", code) is True
    # consumed
    assert await store.verify("a@example.com", code) is False


@pytest.mark.asyncio
async def test_wrong_code_keeps_code_valid(kv):
    store = OtpStore(kv)
    code = await store.issue("a@example.com")
    wrong = "111111" if code != "111111" else "222222"

    assert await store.verify("a@example.com", wrong) is False
    assert await store.verify("a@example.com", code) is True


@pytest.mark.asyncio
async def test_fourth_attempt_fails_even_with_correct_code(kv):
    """Three wrong guesses, then the right code on the fourth try is refused."""
    store = OtpStore(kv, max_attempts=3)
    code = await store.issue("a@example.com")
    wrong = "111111" if code != "111111" else "222222"

    for _ in range(3):
        assert await store.verify("a@example.com", wrong) is False

    with pytest.raises(OtpAttemptsExceeded):
        await store.verify("a@example.com", code)

    assert await kv.get(f"{OTP_PREFIX}a@example.com") is None
    assert await kv.get(f"{OTP_ATTEMPTS_PREFIX}a@example.com") is None


@pytest.mark.asyncio
async def test_reissue_resets_attempts(kv):
    store = OtpStore(kv)
    await store.issue("a@example.com")
    await store.verify("a@example.com", "000000")
    await store.verify("a@example.com", "000000")

    code = await store.issue("a@example.com")
    assert await kv.get(f"{OTP_ATTEMPTS_PREFIX}a@example.com") is None
    assert await store.verify("a@example.com", code) is True


@pytest.mark.asyncio
async def test_missing_code_is_a_mismatch(kv):
    store = OtpStore(kv)
    assert await store.verify("nobody@example.com", "123456") is False
