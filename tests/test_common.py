from datetime import timezone

import pytest

from markshelf.services.common import (
    folder_path_or_default,
    normalize_folder_path,
    normalize_url,
    parse_client_time,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("A/B/C", "A/B/C"),
        ("/A//B/", "A/B"),
        (" Work / Tools ", "Work/Tools"),
        ("///", ""),
        (None, ""),
    ],
)
def test_normalize_folder_path(raw, expected):
    assert normalize_folder_path(raw) == expected


def test_folder_path_defaults_to_imported():
    assert folder_path_or_default("  /  ") == "Imported"
    assert folder_path_or_default("Reading") == "Reading"


def test_normalize_url_ignores_case_query_order_and_fragment():
    assert normalize_url("HTTPS://Example.COM/a?b=2&a=1#top") == normalize_url(
        "https://example.com/a?a=1&b=2"
    )
    assert normalize_url("https://example.com") == "https://example.com/"


def test_parse_client_time_accepts_epoch_milliseconds():
    parsed = parse_client_time(1_600_000_000_000)
    assert parsed.year == 2020
    assert parsed.tzinfo == timezone.utc
    assert parse_client_time("1600000000000") == parsed


def test_parse_client_time_accepts_iso_strings():
    parsed = parse_client_time("2021-03-04T05:06:07")
    assert (parsed.year, parsed.month, parsed.day) == (2021, 3, 4)
    assert parsed.tzinfo == timezone.utc


@pytest.mark.parametrize("value", [None, "", "not a date", True, "-5"])
def test_parse_client_time_rejects_garbage(value):
    assert parse_client_time(value) is None
