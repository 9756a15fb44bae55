from datetime import datetime, timedelta

from storyvault.application import rate_limiter
from storyvault.domain.constants import RATE_LIMIT_WINDOW
from storyvault.domain.entities import Author

NOW = datetime(2025, 3, 1, 12, 0, 0)


def _author(last_post_at: datetime | None) -> Author:
    return Author(
        id=1,
        email="alice@example.com",
        name="Alice",
        ip_address="10.0.0.1",
        created_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
        last_post_at=last_post_at,
    )


def test_first_post_is_always_allowed():
    author = _author(None)

    assert rate_limiter.can_post_now(author, NOW)
    assert rate_limiter.next_post_time(author, NOW) == NOW
    assert rate_limiter.remaining_seconds(author, NOW) == 0


def test_post_just_now_blocks_for_full_window():
    author = _author(NOW)

    assert not rate_limiter.can_post_now(author, NOW)
    assert rate_limiter.remaining_seconds(author, NOW) == 180
    assert rate_limiter.next_post_time(author, NOW) == NOW + RATE_LIMIT_WINDOW


def test_window_boundary():
    author = _author(NOW)

    one_second_early = NOW + RATE_LIMIT_WINDOW - timedelta(seconds=1)
    assert not rate_limiter.can_post_now(author, one_second_early)
    assert rate_limiter.remaining_seconds(author, one_second_early) == 1

    assert rate_limiter.can_post_now(author, NOW + RATE_LIMIT_WINDOW)
    assert rate_limiter.remaining_seconds(author, NOW + RATE_LIMIT_WINDOW) == 0


def test_partial_seconds_round_up():
    author = _author(NOW)

    at = NOW + timedelta(seconds=179, milliseconds=500)

    assert rate_limiter.remaining_seconds(author, at) == 1


def test_remaining_never_negative():
    author = _author(NOW - timedelta(hours=2))

    assert rate_limiter.remaining_seconds(author, NOW) == 0
    assert rate_limiter.can_post_now(author, NOW)


def test_custom_window():
    author = _author(NOW)
    window = timedelta(seconds=10)

    assert rate_limiter.remaining_seconds(author, NOW, window) == 10
    assert rate_limiter.can_post_now(author, NOW + window, window)
