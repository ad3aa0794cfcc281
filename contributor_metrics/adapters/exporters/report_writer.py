from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List, TextIO

from ...domain.models import AggregateReport
from ...domain.time_utils import millis_to_iso

OUTPUT_FORMATS = ("summary", "json", "csv")
SORT_KEYS = ("repo", "contributors")


def _repo_rows(report: AggregateReport, sort: str) -> List[List[Any]]:
    rows = [[repo, count] for repo, count in report.repo_contributor_counts.items()]
    if sort == "contributors":
        rows.sort(key=lambda r: (-r[1], r[0]))
    else:
        rows.sort(key=lambda r: r[0])
    return rows


def report_to_dict(report: AggregateReport, sort: str = "repo") -> Dict[str, Any]:
    return {
        "source": report.source_type.value if report.source_type else None,
        "since": millis_to_iso(report.since) if report.since is not None else None,
        "total_contributors": report.contributor_count,
        "repos_scanned": report.repos_scanned,
        "complete": report.complete,
        "repos": [{"repo": repo, "contributors": count} for repo, count in _repo_rows(report, sort)],
        "contributors": [
            {
                "name": c.name,
                "email": c.email,
                "last_commit_date": millis_to_iso(c.last_commit),
                "repos": sorted(c.repos),
            }
            for c in report.sorted_contributors()
        ],
        "failures": [
            {"repo": f.target, "kind": f.kind, "message": f.message} for f in report.failures
        ],
    }


def write_json(report: AggregateReport, out: TextIO, sort: str = "repo") -> None:
    json.dump(report_to_dict(report, sort), out, indent=2)
    out.write("\n")


def write_csv(report: AggregateReport, out: TextIO, sort: str = "repo") -> None:
    """
    Writes one row per contributor, then one row per failed repository
    """
    writer = csv.writer(out)
    writer.writerow(["email", "name", "last_commit_date", "repos"])
    for c in report.sorted_contributors():
        writer.writerow([c.email or "", c.name, millis_to_iso(c.last_commit), ";".join(sorted(c.repos))])

    if report.failures:
        writer.writerow([])
        writer.writerow(["failed_repo", "kind", "message"])
        for f in report.failures:
            writer.writerow([f.target, f.kind, f.message])


def write_summary(report: AggregateReport, out: TextIO, sort: str = "repo") -> None:
    rows = _repo_rows(report, sort)
    width = max([len("Repo")] + [len(r[0]) for r in rows])

    since = millis_to_iso(report.since) if report.since is not None else "N/A"
    out.write(f"Active contributors since {since}\n\n")
    out.write(f"{'Repo'.ljust(width)}  Contributors\n")
    out.write(f"{'-' * width}  ------------\n")
    for repo, count in rows:
        out.write(f"{repo.ljust(width)}  {count}\n")
    out.write(f"\nTotal unique contributors: {report.contributor_count}\n")
    out.write(f"Repos scanned: {report.repos_scanned}\n")

    if report.failures:
        out.write(
            f"\nWARNING: results are partial, {len(report.failures)} target(s) could not be scanned:\n"
        )
        for f in report.failures:
            out.write(f"  {f.target} [{f.kind}] {f.message}\n")


WRITERS = {
    "summary": write_summary,
    "json": write_json,
    "csv": write_csv,
}


def render_report(report: AggregateReport, output: str = "summary", sort: str = "repo") -> str:
    if output not in WRITERS:
        raise ValueError(f"Unknown output format '{output}', expected one of {OUTPUT_FORMATS}")
    buf = io.StringIO()
    WRITERS[output](report, buf, sort)
    return buf.getvalue()


def write_report(report: AggregateReport, filepath: str, output: str = "summary", sort: str = "repo") -> None:
    with open(filepath, "w", newline="", encoding="utf-8") as f:
        f.write(render_report(report, output, sort))
