"""
mcmigrate CLI entry point.

This creates the 'mcmigrate' command via entry point in pyproject.toml.
"""

from mcmigrate.cli.app import cli


def main():
    """Main entry point for the mcmigrate CLI."""
    cli()


if __name__ == "__main__":
    main()
