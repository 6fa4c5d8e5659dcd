"""
Tests for transfer command construction.
"""

from mcmigrate.transfer import build_mirror_args, format_command
from mcmigrate.types import Endpoint, MigrationOptions

SOURCE = Endpoint.parse("a/bucket1")
DESTINATION = Endpoint.parse("b/bucket2")


class TestBuildMirrorArgs:
    def test_plain_mirror(self):
        assert build_mirror_args(SOURCE, DESTINATION, MigrationOptions()) == [
            "mirror",
            "a/bucket1",
            "b/bucket2",
        ]

    def test_every_option_maps_to_a_flag(self):
        options = MigrationOptions(
            overwrite=True,
            remove=True,
            exclude=["*.tmp", "logs/*"],
            checksum="SHA256",
            preserve=True,
            retry=True,
            dry_run=True,
            watch=True,
        )

        args = build_mirror_args(SOURCE, DESTINATION, options)

        assert args == [
            "mirror",
            "--overwrite",
            "--remove",
            "--exclude",
            "*.tmp",
            "--exclude",
            "logs/*",
            "--checksum",
            "SHA256",
            "--preserve",
            "--retry",
            "--dry-run",
            "--watch",
            "a/bucket1",
            "b/bucket2",
        ]

    def test_endpoints_always_last(self):
        args = build_mirror_args(SOURCE, DESTINATION, MigrationOptions(overwrite=True))

        assert args[-2:] == ["a/bucket1", "b/bucket2"]


def test_format_command_quotes_patterns():
    command = format_command("/usr/bin/mc", ["mirror", "--exclude", "my files/*", "a/b", "c/d"])

    assert command == "/usr/bin/mc mirror --exclude 'my files/*' a/b c/d"
