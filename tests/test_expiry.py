"""Tests for expiry expression parsing."""

from datetime import datetime, timedelta, timezone

import pytest

from chatlink.errors import CredentialError
from chatlink.expiry import parse_expiry

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "expression,seconds",
    [
        ("900", 900),
        ("0", 0),
        ("45s", 45),
        ("15m", 900),
        ("2h", 7200),
        ("1d", 86400),
        ("  60  ", 60),
    ],
)
def test_relative_forms(expression: str, seconds: int) -> None:
    assert parse_expiry(expression, now=NOW) == NOW + timedelta(seconds=seconds)


def test_absolute_timestamp_with_z_suffix() -> None:
    result = parse_expiry("2026-01-15T13:30:00Z", now=NOW)
    assert result == datetime(2026, 1, 15, 13, 30, tzinfo=timezone.utc)
    assert result.tzinfo is not None


def test_absolute_timestamp_with_offset_is_converted_to_utc() -> None:
    result = parse_expiry("2026-01-15T14:00:00+02:00")
    assert result == datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def test_naive_absolute_timestamp_is_taken_as_utc() -> None:
    assert parse_expiry("2026-01-15T12:00:00") == NOW


def test_relative_form_defaults_to_current_time() -> None:
    before = datetime.now(timezone.utc)
    result = parse_expiry("60")
    after = datetime.now(timezone.utc)
    assert before + timedelta(seconds=60) <= result <= after + timedelta(seconds=60)


@pytest.mark.parametrize("expression", ["", "abc", "10w", "1.5h", "m5", "2026-13-45"])
def test_invalid_forms_raise_credential_error(expression: str) -> None:
    with pytest.raises(CredentialError, match="Invalid expiration format"):
        parse_expiry(expression, now=NOW)


def test_non_string_raises_credential_error() -> None:
    with pytest.raises(CredentialError):
        parse_expiry(900, now=NOW)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "expression",
    ["99999999999999d", "999999999d", "9999-12-31T23:59:59-05:00"],
)
def test_out_of_range_instants_raise_credential_error(expression: str) -> None:
    with pytest.raises(CredentialError, match="Invalid expiration format") as exc_info:
        parse_expiry(expression, now=NOW)
    assert isinstance(exc_info.value.__cause__, OverflowError)


def test_extreme_but_representable_instants_parse() -> None:
    assert parse_expiry("0001-01-01T00:00:00Z").year == 1
    assert parse_expiry("9999-12-31T23:59:59Z").year == 9999
