from __future__ import annotations

from datetime import UTC, datetime, timedelta
import re

from backup_session_trigger.naming import MAX_NAME_LENGTH, generate_session_name, valid_name_with_suffix

_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_CREATED_AT = datetime.fromtimestamp(1700000000, UTC)


def test_generate_session_name_with_short_invoker_name_appends_unix_seconds() -> None:
    assert generate_session_name("nightly-backup", _CREATED_AT) == "nightly-backup-1700000000"


def test_generate_session_name_with_max_length_invoker_name_keeps_suffix_and_stays_valid() -> None:
    name = generate_session_name("b" * MAX_NAME_LENGTH, _CREATED_AT)

    assert len(name) <= MAX_NAME_LENGTH
    assert name.endswith("-1700000000")
    assert _DNS_LABEL.match(name)


def test_generate_session_name_within_same_second_is_deterministic() -> None:
    first = generate_session_name("nightly-backup", _CREATED_AT)
    second = generate_session_name("nightly-backup", _CREATED_AT + timedelta(milliseconds=900))

    assert first == second


def test_valid_name_with_suffix_truncation_drops_trailing_dash_before_suffix() -> None:
    raw = "a" * 51 + "-" + "b" * 20
    name = valid_name_with_suffix(raw, "1700000000")

    assert name == "a" * 51 + "-1700000000"
    assert _DNS_LABEL.match(name)


def test_valid_name_with_suffix_replaces_unsupported_characters() -> None:
    name = valid_name_with_suffix("Team_A/Nightly.Backup", "1700000000")

    assert name == "team-a-nightly-backup-1700000000"


def test_valid_name_with_suffix_without_usable_name_returns_suffix() -> None:
    assert valid_name_with_suffix("__", "1700000000") == "1700000000"
