from __future__ import annotations

import json
from pathlib import Path

from .spec import DetectionResult


def emit_report(result: DetectionResult, dest_path: str) -> None:
    dest = Path(dest_path)
    dest.mkdir(parents=True, exist_ok=True)
    with open(dest / "detection.json", "w") as f:
        json.dump(result.to_dict(), f, indent=2)

    build = result.build_config
    lines = []
    lines.append(f"Framework: {result.framework}")
    lines.append(f"Confidence: {result.confidence:.2f}")
    lines.append(f"Rule: {result.rule_id or 'generic fallback'}")
    lines.append(f"Install command: {build.install_command}")
    lines.append(f"Build command: {build.build_command}")
    lines.append(f"Output directory: {build.output_directory}")
    lines.append(f"Start command: {build.start_command}")
    lines.append(f"Needs database: {result.needs.database}")
    lines.append(f"Long-running process: {result.needs.long_running}")
    lines.append(f"Static only: {result.needs.static_only}")
    lines.append("")
    lines.append("Providers:")
    for i, candidate in enumerate(result.providers, 1):
        lines.append(f"{i}. {candidate.provider} ({candidate.suitability}, {candidate.score:.2f}) "
                     f"- {candidate.estimated_cost}")
        lines.append(f"   {candidate.rationale}")
    lines.append("")
    if result.caveats:
        lines.append("Caveats:")
        for c in result.caveats:
            lines.append(f"- {c}")
        lines.append("")
    if result.rationale:
        lines.append("Rationale:")
        for r in result.rationale:
            lines.append(f"- {r}")
        lines.append("")
    lines.append("Environment keys:")
    for k in result.env_vars:
        lines.append(f"- {k}")

    with open(dest / "analysis.md", "w") as f:
        f.write("\n".join(lines))
