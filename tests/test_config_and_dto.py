from datetime import timedelta

import pytest
from pydantic import ValidationError

from application.dto import RefreshFailureKind, RefreshResult, TokenPair
from core.config import TokenRefreshSettings
from domain.common.exceptions import AccountDisabledException
from shared.codes import BusinessCode


def test_default_refresh_settings_satisfy_wait_invariant():
    cfg = TokenRefreshSettings()
    assert cfg.lock_timeout == timedelta(seconds=5)
    assert cfg.refresh_token_ttl == timedelta(days=7)
    assert cfg.grace_period == timedelta(seconds=20)
    assert cfg.token_cache_ttl.total_seconds() >= cfg.max_wait_seconds


def test_cache_ttl_shorter_than_follower_wait_is_rejected():
    with pytest.raises(ValidationError):
        TokenRefreshSettings(token_cache_ttl=timedelta(seconds=1), wait_attempts=50, wait_interval=0.1)


def test_durations_parse_from_seconds():
    cfg = TokenRefreshSettings(lock_timeout=3, token_cache_ttl=10, grace_period="PT30S")
    assert cfg.lock_timeout == timedelta(seconds=3)
    assert cfg.grace_period == timedelta(seconds=30)


def test_refresh_result_requires_exactly_one_outcome():
    pair = TokenPair(access_token="a", refresh_token="r")
    with pytest.raises(ValidationError):
        RefreshResult(pair=pair, failure=RefreshFailureKind.REFRESH_TIMEOUT)
    with pytest.raises(ValidationError):
        RefreshResult()


def test_failure_kinds_map_to_business_exceptions():
    result = RefreshResult.fail(RefreshFailureKind.ACCOUNT_DISABLED, user_id=3)

    exc = result.to_exception()
    assert isinstance(exc, AccountDisabledException)
    assert exc.code == BusinessCode.ACCOUNT_DISABLED
    assert exc.details == {"user_id": 3}
    assert [k for k in RefreshFailureKind if k.retryable] == [RefreshFailureKind.REFRESH_TIMEOUT]


def test_token_pair_encoding_is_stable():
    pair = TokenPair(access_token="a", refresh_token="r")
    assert pair.model_dump(mode="json") == {"access_token": "a", "refresh_token": "r", "token_type": "bearer"}
    assert TokenPair.model_validate(pair.model_dump(mode="json")) == pair
