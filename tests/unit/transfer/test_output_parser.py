"""
Tests for transfer output parsing.
"""

import pytest

from mcmigrate.transfer import TransferOutputParser, parse_size
from mcmigrate.types import MigrationStats


@pytest.mark.parametrize(
    ("value", "unit", "expected"),
    [
        ("512", "B", 512),
        ("1", "KiB", 1024),
        ("1.5", "MB", int(1.5 * 1024**2)),
        ("2", "gib", 2 * 1024**3),
        ("3", "parsecs", 3),
    ],
)
def test_parse_size(value, unit, expected):
    assert parse_size(value, unit) == expected


class TestTextOutput:
    def test_progress_sequence(self):
        parser = TransferOutputParser()
        progress = []

        for line in [
            "Total: 3 objects",
            "`a/bucket1/one.txt` -> `b/bucket2/one.txt`",
            "`a/bucket1/two.txt` -> `b/bucket2/two.txt`",
            "`a/bucket1/three.txt` -> `b/bucket2/three.txt`",
        ]:
            parser.feed(line)
            progress.append(parser.progress)

        assert progress == [5, 33, 66, 95]
        assert parser.stats.total_objects == 3
        assert parser.stats.transferred_objects == 3

    def test_progress_cap_is_configurable(self):
        parser = TransferOutputParser(max_progress=50)
        parser.feed("Total: 1 objects")
        parser.feed("`a/b1/x` -> `b/b2/x`")

        assert parser.progress == 50

    def test_total_size(self):
        parser = TransferOutputParser()

        update = parser.feed("Total: 2.0 GiB")

        assert update.stats_changed
        assert parser.stats.total_size == 2 * 1024**3

    def test_speed_is_latest_reading(self):
        parser = TransferOutputParser()

        parser.feed("Transferred: 3 objects, 12.5 MiB/s")
        first = parser.stats.speed
        parser.feed("Transferred: 4 objects, 1 KiB/s")

        assert first == 12.5 * 1024**2
        assert parser.stats.speed == 1024.0

    def test_values_only_grow(self):
        parser = TransferOutputParser(stats=MigrationStats(total_objects=10), progress=40)

        update = parser.feed("Total: 4 objects")

        assert not update.stats_changed
        assert parser.stats.total_objects == 10
        assert parser.progress == 40

    def test_unrecognized_lines_are_ignored(self):
        parser = TransferOutputParser()

        assert parser.feed("").kind == "ignored"
        assert parser.feed("   ").kind == "ignored"
        assert parser.stats == MigrationStats()

    def test_stderr_lines_are_errors(self):
        parser = TransferOutputParser()

        update = parser.feed("mc: <ERROR> Unable to connect.", stream="stderr")

        assert update.error == "mc: <ERROR> Unable to connect."
        assert update.kind == "error"

    def test_error_marker_on_stdout(self):
        update = TransferOutputParser().feed("Error: access denied")

        assert update.error == "Error: access denied"


class TestJsonOutput:
    def test_copy_records(self):
        parser = TransferOutputParser()

        parser.feed('{"status": "success", "totalCount": 2, "totalSize": 300}')
        parser.feed('{"status": "success", "source": "a/b1/x", "target": "b/b2/x", "size": 100}')

        assert parser.stats.total_objects == 2
        assert parser.stats.total_size == 300
        assert parser.stats.transferred_objects == 1
        assert parser.stats.transferred_size == 100
        assert parser.progress == 50

    def test_error_record(self):
        update = TransferOutputParser().feed(
            '{"status": "error", "error": {"message": "Bucket does not exist"}}'
        )

        assert update.error == "Bucket does not exist"
        assert not update.stats_changed

    def test_malformed_json_falls_back_to_text(self):
        parser = TransferOutputParser()

        update = parser.feed("{not json")

        assert update.error is None
        assert not update.stats_changed
        assert parser.stats == MigrationStats()

    def test_speed_as_text(self):
        parser = TransferOutputParser()

        update = parser.feed('{"status": "success", "speed": "1.5MiB/s"}')

        assert update.stats_changed
        assert parser.stats.speed == float(int(1.5 * 1024**2))

    @pytest.mark.parametrize(
        "record",
        [
            '{"status": "success", "totalCount": null}',
            '{"status": "success", "totalCount": "many", "totalSize": [1]}',
            '{"status": "success", "totalSize": -5, "speed": true}',
            '{"status": "success", "speed": Infinity}',
            '{"status": "success", "source": "a/b1/x", "target": "b/b2/x", "size": "big"}',
        ],
    )
    def test_unusable_fields_are_skipped(self, record):
        parser = TransferOutputParser()

        update = parser.feed(record)

        assert update.error is None
        assert parser.stats.total_objects == 0
        assert parser.stats.total_size == 0
        assert parser.stats.transferred_size == 0
        assert parser.stats.speed == 0.0
