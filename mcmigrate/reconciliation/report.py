"""
Reconciliation report artifact.

The report is a plain dict (stored as JSON, keyed by migration id) with four
sections: summary, breakdown, performance and recommendations.
"""

import json
from pathlib import Path
from typing import Any

from mcmigrate.core.clock import to_iso
from mcmigrate.types import DifferenceCounts, Migration, Reconciliation

# (count attribute, type, severity, message template, action)
_RECOMMENDATION_RULES = (
    (
        "missing_in_destination",
        "missing_files",
        "high",
        "{n} files are missing in destination",
        "Run incremental sync to copy missing files",
    ),
    (
        "size_mismatches",
        "size_mismatches",
        "high",
        "{n} files have size mismatches",
        "Re-copy files with size differences",
    ),
    (
        "content_mismatches",
        "content_mismatches",
        "medium",
        "{n} files have content/ETag mismatches",
        "Verify and re-copy files if necessary",
    ),
    (
        "missing_in_source",
        "extra_files",
        "low",
        "{n} extra files found in destination",
        "Review and clean up if necessary",
    ),
)


def generate_recommendations(counts: DifferenceCounts) -> list[dict[str, Any]]:
    """One recommendation per non-empty difference category, or a single "perfect" one."""
    recommendations = []
    for attr, kind, severity, message, action in _RECOMMENDATION_RULES:
        n = getattr(counts, attr)
        if n > 0:
            recommendations.append(
                {
                    "type": kind,
                    "severity": severity,
                    "count": n,
                    "message": message.format(n=n),
                    "action": action,
                }
            )

    if not recommendations:
        recommendations.append(
            {
                "type": "perfect_migration",
                "severity": "info",
                "count": 0,
                "message": "Perfect migration! All files match exactly",
                "action": "No action required",
            }
        )

    return recommendations


def success_rate(counts: DifferenceCounts) -> float:
    """Percentage of compared keys that matched; 100 when there was nothing to compare."""
    if counts.total_compared == 0:
        return 100.0
    return round(counts.matches / counts.total_compared * 100, 2)


def build_report(migration: Migration, reconciliation: Reconciliation) -> dict[str, Any]:
    counts = reconciliation.counts
    summary = reconciliation.summary
    duration = None
    if reconciliation.end_time is not None:
        duration = (reconciliation.end_time - reconciliation.start_time).total_seconds()

    processed = reconciliation.source_processed + reconciliation.dest_processed

    return {
        "migration_id": migration.id,
        "source": str(migration.source),
        "destination": str(migration.destination),
        "generated_at": to_iso(reconciliation.end_time),
        "summary": {
            "total_objects_compared": counts.total_compared,
            "perfect_matches": counts.matches,
            "total_differences": counts.total_differences,
            "success_rate": success_rate(counts),
            "object_count_match": summary.object_count_match if summary else None,
            "total_size_match": summary.total_size_match if summary else None,
            "differences_found": summary.differences_found if summary else None,
            "source": reconciliation.source_stats.to_dict(),
            "destination": reconciliation.dest_stats.to_dict(),
        },
        "breakdown": {
            "missing_in_destination": counts.missing_in_destination,
            "missing_in_source": counts.missing_in_source,
            "size_mismatches": counts.size_mismatches,
            "content_mismatches": counts.content_mismatches,
        },
        "performance": {
            "start_time": to_iso(reconciliation.start_time),
            "end_time": to_iso(reconciliation.end_time),
            "duration_seconds": duration,
            "source_objects_processed": reconciliation.source_processed,
            "destination_objects_processed": reconciliation.dest_processed,
            "objects_per_second": round(processed / duration, 2) if duration else None,
            "pages_compared": reconciliation.pages_completed,
        },
        "recommendations": generate_recommendations(counts),
        "differences": [difference.to_dict() for difference in reconciliation.differences],
    }


def export_report(report: dict[str, Any], reports_dir: str | Path) -> Path:
    """Write the report as ``reconciliation_report_<id>.json`` and return its path."""
    directory = Path(reports_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"reconciliation_report_{report['migration_id']}.json"
    path.write_text(json.dumps(report, indent=2))
    return path
