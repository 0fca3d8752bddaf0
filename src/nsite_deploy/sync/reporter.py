"""Deploy report formatting.

- ``format_deploy_report`` -- post-run summary.
- ``format_dry_run_preview`` -- what a run would do.
- ``format_endpoint_matrix`` -- per-file, per-endpoint status grid.
- ``format_propagation`` -- relay/server spread.
- ``report_to_json`` -- structured dict for machine consumers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import EndpointStatus

if TYPE_CHECKING:
    from .models import DeployReport, PropagationStats, UploadResult

_STATUS_SYMBOLS = {
    EndpointStatus.PENDING: ".",
    EndpointStatus.IN_FLIGHT: "~",
    EndpointStatus.SUCCESS: "+",
    EndpointStatus.ALREADY_PRESENT: "=",
    EndpointStatus.FAILED: "x",
}


def _site_label(report: DeployReport) -> str:
    return f"site '{report.site_id}'" if report.site_id else "root site"


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_deploy_report(report: DeployReport) -> str:
    """Format a finished deploy as text.

    Sections appear only when non-empty.
    """
    lines: list[str] = []

    header = f"Deploy report for {_site_label(report)}"
    if report.dry_run:
        header += " (DRY RUN)"
    if report.cancelled:
        header += " (CANCELLED)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    summary = report.summary()
    lines.append(
        f"{summary['uploaded']} uploaded, {summary['unchanged']} unchanged, "
        f"{summary['deleted']} deleted, {summary['failed']} failed"
    )
    lines.append("")

    if report.uploaded:
        lines.append("Uploaded:")
        for r in report.uploaded:
            ok = sum(1 for o in r.per_endpoint if o.succeeded)
            note = "" if r.event_published else " (not advertised)"
            lines.append(
                f"  {r.file.path} [{ok}/{len(r.per_endpoint)} servers]{note}"
            )
        lines.append("")

    if report.failed:
        lines.append("Failed:")
        for r in report.failed:
            lines.append(f"  {r.file.path}: {_failure_text(r)}")
        lines.append("")

    if report.skipped:
        lines.append(f"Not started: {len(report.skipped)} files")
        lines.append("")

    if report.deleted:
        lines.append("Deleted:")
        for record in report.deleted:
            lines.append(f"  {record.path}")
        lines.append("")
    elif report.purge is not None and report.purge.orphans and not report.purge.confirmed:
        lines.append(
            f"Purge not confirmed: {len(report.purge.orphans)} files kept"
        )
        lines.append("")

    if report.manifest_event_id:
        state = "published" if report.manifest_published else "NOT published"
        lines.append(f"Manifest {report.manifest_event_id} {state}")
        lines.append("")

    if report.local_errors:
        lines.append("Unreadable local files:")
        for err in report.local_errors:
            lines.append(f"  {err}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for err in report.errors:
            lines.append(f"  {err}")
        lines.append("")

    return "\n".join(lines).rstrip()


def _failure_text(result: UploadResult) -> str:
    if result.error:
        return result.error
    parts = [
        f"{o.endpoint_id} {o.failure.value if o.failure else 'failed'}"
        + (f" ({o.error})" if o.error else "")
        for o in result.failures
    ]
    return "; ".join(parts) or "no endpoint attempted"


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: DeployReport) -> str:
    """List planned uploads and remote-only files without doing anything."""
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Target: {_site_label(report)}")
    lines.append("")

    if report.to_upload:
        lines.append("[UPLOAD]")
        for record in report.to_upload:
            lines.append(f"  {record.path} ({record.size} bytes)")
        lines.append("")

    if report.to_delete:
        lines.append("[REMOTE ONLY]")
        for record in report.to_delete:
            lines.append(f"  {record.path}")
        lines.append("")

    if report.unchanged:
        lines.append(f"Unchanged: {len(report.unchanged)} files")
        lines.append("")

    if not report.to_upload and not report.to_delete:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Per-endpoint status
# ------------------------------------------------------------------


def format_endpoint_matrix(results: list[UploadResult]) -> str:
    """One row per file, one column per blob endpoint.

    Symbols: ``+`` stored, ``=`` already present, ``x`` failed,
    ``.`` not attempted.
    """
    endpoint_ids: list[str] = []
    for r in results:
        for o in r.per_endpoint:
            if o.endpoint_id not in endpoint_ids:
                endpoint_ids.append(o.endpoint_id)
    if not endpoint_ids:
        return ""

    lines = ["  ".join(f"[{i}]" for i in range(len(endpoint_ids))) + "  path"]
    for r in results:
        by_endpoint = {o.endpoint_id: o.status for o in r.per_endpoint}
        cells = [
            f" {_STATUS_SYMBOLS[by_endpoint.get(e, EndpointStatus.PENDING)]} "
            for e in endpoint_ids
        ]
        lines.append("  ".join(cells) + f"  {r.file.path}")
    lines.append("")
    for i, endpoint_id in enumerate(endpoint_ids):
        lines.append(f"[{i}] {endpoint_id}")
    return "\n".join(lines)


def format_propagation(stats: PropagationStats) -> str:
    relays = (
        f"Relays:  {stats.relay_strength.value} "
        f"({stats.relay_coverage:.0f}% of {stats.total_relays}, "
        f"{stats.files_on_all_relays}/{stats.total_files} files on all)"
    )
    if stats.server_strength is None:
        return relays + "\nServers: not checked"
    return (
        relays + "\n"
        f"Servers: {stats.server_strength.value} "
        f"({stats.server_coverage:.0f}% of {stats.total_servers}, "
        f"{stats.files_on_all_servers}/{stats.total_files} files on all)"
    )


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: DeployReport) -> dict:
    """Convert a report to a JSON-serialisable dict."""
    results_list = []
    for r in report.results:
        entry: dict = {
            "path": r.file.path,
            "content_hash": r.file.content_hash,
            "success": r.overall_success,
            "event_id": r.event_id,
            "event_published": r.event_published,
            "endpoints": [
                {
                    "endpoint": o.endpoint_id,
                    "status": o.status.value,
                    **({"failure": o.failure.value} if o.failure else {}),
                    **({"error": o.error} if o.error else {}),
                }
                for o in r.per_endpoint
            ],
        }
        if r.cancelled:
            entry["cancelled"] = True
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    data: dict = {
        "site_id": report.site_id,
        "phase": report.phase.value,
        "dry_run": report.dry_run,
        "cancelled": report.cancelled,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "summary": report.summary(),
        "results": results_list,
        "unchanged": [r.path for r in report.unchanged],
        "to_delete": [r.path for r in report.to_delete],
        "errors": list(report.errors),
        "local_errors": list(report.local_errors),
    }
    if report.manifest is not None:
        data["manifest"] = {
            "event_id": report.manifest_event_id,
            "published": report.manifest_published,
            "paths": dict(report.manifest.paths),
        }
    if report.purge is not None:
        data["purge"] = {
            "confirmed": report.purge.confirmed,
            "published": report.purge.published,
            "success": report.purge.success,
            "deleted": [r.path for r in report.purge.deleted],
            "skipped": [r.path for r in report.purge.skipped],
            "still_present": list(report.purge.still_present),
        }
    if report.propagation is not None:
        data["propagation"] = report.propagation.model_dump(mode="json")
    return data
