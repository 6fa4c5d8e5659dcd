"""
Post-transfer verification of source and destination inventories.
"""

from .engine import ReconciliationEngine, classify
from .lister import InMemoryObjectLister, McObjectLister, ObjectLister, parse_listing_line
from .report import build_report, export_report, generate_recommendations, success_rate

__all__ = [
    "InMemoryObjectLister",
    "McObjectLister",
    "ObjectLister",
    "ReconciliationEngine",
    "build_report",
    "classify",
    "export_report",
    "generate_recommendations",
    "parse_listing_line",
    "success_rate",
]
