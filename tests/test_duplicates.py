from markshelf.services.common import normalize_url
from markshelf.services.duplicates import dedupe_batch, partition_duplicates


def test_dedupe_batch_keeps_first_occurrence():
    unique, repeated = dedupe_batch(
        [
            "https://Example.com/a?b=2&a=1",
            "https://example.com/a?a=1&b=2",
            "https://example.com/other",
            "https://example.com/a?a=1&b=2#section",
        ]
    )

    assert unique == ["https://Example.com/a?b=2&a=1", "https://example.com/other"]
    assert len(repeated) == 2


def test_partition_separates_stored_urls():
    stored = {normalize_url("https://example.com/known")}

    partition = partition_duplicates(
        1,
        ["https://example.com/known", "https://example.com/new"],
        lambda user_id, keys: {key for key in keys if key in stored},
    )

    assert partition.duplicates == ["https://example.com/known"]
    assert partition.fresh == ["https://example.com/new"]
    assert partition.repeated == []


def test_repeated_batch_entries_are_not_reported_as_duplicates():
    partition = partition_duplicates(
        1,
        ["https://x.test/a", "https://x.test/a"],
        lambda user_id, keys: set(),
    )

    assert partition.fresh == ["https://x.test/a"]
    assert partition.duplicates == []
    assert partition.repeated == ["https://x.test/a"]


def test_store_lookup_is_chunked_at_two_hundred():
    calls = []

    def find_existing(user_id, keys):
        calls.append(len(keys))
        return set()

    urls = [f"https://example.com/{i}" for i in range(450)]
    partition_duplicates(7, urls, find_existing, chunk_size=1000)

    assert calls == [200, 200, 50]


def test_store_lookup_honors_smaller_chunk_size():
    calls = []
    partition_duplicates(
        7,
        [f"https://example.com/{i}" for i in range(5)],
        lambda user_id, keys: calls.append((user_id, len(keys))) or set(),
        chunk_size=2,
    )
    assert calls == [(7, 2), (7, 2), (7, 1)]
