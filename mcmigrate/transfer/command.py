"""
Transfer tool invocation.

The tool is invoked as ``<tool> mirror <flags> <source> <destination>`` with
each option mapped to one flag. Arguments are passed as a list, never through
a shell, so exclude patterns need no quoting.
"""

import shlex

from mcmigrate.types import Endpoint, MigrationOptions


def build_mirror_args(
    source: Endpoint, destination: Endpoint, options: MigrationOptions
) -> list[str]:
    """
    Build the argument list following the executable.

    Example:
        >>> build_mirror_args(
        ...     Endpoint.parse("a/bucket1"),
        ...     Endpoint.parse("b/bucket2"),
        ...     MigrationOptions(overwrite=True, exclude=["*.tmp"]),
        ... )
        ['mirror', '--overwrite', '--exclude', '*.tmp', 'a/bucket1', 'b/bucket2']
    """
    args = ["mirror"]

    if options.overwrite:
        args.append("--overwrite")
    if options.remove:
        args.append("--remove")
    for pattern in options.exclude:
        args.extend(["--exclude", pattern])
    if options.checksum:
        args.extend(["--checksum", options.checksum])
    if options.preserve:
        args.append("--preserve")
    if options.retry:
        args.append("--retry")
    if options.dry_run:
        args.append("--dry-run")
    if options.watch:
        args.append("--watch")

    args.extend([str(source), str(destination)])
    return args


def format_command(tool_path: str, args: list[str]) -> str:
    """Shell-quoted command line, for logs only."""
    return shlex.join([tool_path, *args])
