"""
Markdown summary of a bootstrap run.
"""

import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from devstack_common.step_models import StepStatus

if TYPE_CHECKING:
    from devstack_modular.orchestrator import OverallReport

STATUS_MARKS = {
    StepStatus.SUCCESS: "✅",
    StepStatus.FAILED: "❌",
    StepStatus.SKIPPED: "⏭️",
}


def render_summary(
    report: "OverallReport", generated_at: Optional[datetime.datetime] = None
) -> str:
    """Render the report as a Markdown document."""
    timestamp = (generated_at or datetime.datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines: List[str] = [
        "# DevOps Stack Configuration Summary",
        "",
        f"**Configuration Date:** {timestamp}",
        f"**Mode:** {'dry run (no change was applied)' if report.dry_run else 'live'}",
        f"**Health checks:** {'strict' if report.strict_health else 'lenient'}",
        "",
    ]
    if report.health_aborted:
        lines += [
            "> Configuration was aborted because at least one service was not healthy.",
            "",
        ]
    if report.cancelled:
        lines += ["> The run was cancelled before it completed.", ""]

    lines += ["## Service Endpoints", ""]
    for outcome in report.services:
        if outcome.endpoint:
            lines.append(f"- **{outcome.service}:** {outcome.endpoint}")
    lines.append("")

    lines += ["## Configured Services", ""]
    for outcome in report.services:
        lines.append(f"### {outcome.service}")
        chain = outcome.chain
        if chain is None:
            reason = outcome.skip_reason or outcome.health.value
            lines.append(f"- Not configured: {reason}")
            if outcome.health_error:
                lines.append(f"- Health check: {outcome.health_error}")
            lines.append("")
            continue

        lines.append(f"**Status:** {chain.status.value}")
        lines.append("")
        for entry in chain.entries:
            mark = STATUS_MARKS.get(entry.status, "")
            kind = "required" if entry.required else "optional"
            line = f"- {mark} `{entry.step_id}` ({kind}): {entry.status.value}"
            if entry.simulated:
                line += " (simulated)"
            if entry.error:
                line += f": {entry.error}"
            lines.append(line)
        for step_id in chain.skipped_steps:
            lines.append(f"- {STATUS_MARKS[StepStatus.SKIPPED]} `{step_id}`: not run")
        lines.append("")

    lines += ["## Important Files", ""]
    if report.credentials_path is not None:
        lines.append(f"- **Credentials:** `{report.credentials_path}`")
    if report.run_directory is not None:
        lines.append(f"- **Configuration Backup:** `{report.run_directory}/`")
    lines.append("")
    return "\n".join(lines)


def write_summary(report: "OverallReport", path: Union[str, Path]) -> Path:
    """Write the summary document, refusing to replace an existing one."""
    target = Path(path)
    with open(target, "x", encoding="utf-8") as f:
        f.write(render_summary(report))
    return target
