"""
Scheduled execution of migrations.
"""

from .scheduler import MigrationScheduler

__all__ = ["MigrationScheduler"]
