"""Output formatters for tick results."""

import json

from src.core.models import TickResult
from src.ml.anomaly import format_time_minute
from src.utils.constants import HAZARD_DISPLAY


class OperatorFormatter:
    """Markdown summary for people watching the fleet."""

    def format(self, result: TickResult) -> str:
        active = bool(result.critical_alerts or result.transitions)
        lines = [
            f"**FIELD STATUS: {'Changes' if active else 'Stable'}**",
            f"**Sim time:** {format_time_minute(result.time_minute)} | "
            f"**Evaluated:** {result.timestamp.strftime('%Y-%m-%d %H:%M')} UTC",
            "",
        ]

        if result.transitions:
            lines.append("**STATUS CHANGES:**")
            for t in result.transitions:
                lines.append(f"- {t.node_id[:8]}: {t.old_status} → {t.new_status}")
            lines.append("")

        if result.critical_alerts:
            lines.append("**CRITICAL ALERTS:**")
            for i, a in enumerate(result.critical_alerts, 1):
                label = HAZARD_DISPLAY.get(a.hazard_type, {}).get("label", a.hazard_type)
                routed = [ica for ica in result.inter_cluster_alerts if ica.source_alert_id == a.alert_id]
                lines.append(f"{i}. [{label.upper()}] **{a.source_node_id[:8]}** ({a.source_cluster_id})")
                lines.append(f"   {a.message}")
                if routed:
                    for ica in routed:
                        lines.append(f"   → {ica.target_cluster_id}: {ica.affected_count} node(s)")
                else:
                    lines.append("   → no neighbouring cluster in range")
                lines.append("")

        if result.feed:
            lines.append("**FEED:**")
            for entry in result.feed:
                lines.append(f"- [{entry.severity.upper()}] {entry.node_id[:8]}: {entry.message}")
            lines.append("")

        if not active and not result.feed:
            lines.append("**All nodes nominal.**")

        lines.extend([
            "---",
            f"*Skipped: {len(result.skipped_nodes)} | Tick: {result.duration_seconds * 1000:.1f}ms*",
        ])
        return "\n".join(lines)


class JsonFormatter:
    """JSON with full details."""

    def format(self, result: TickResult) -> dict:
        return result.to_dict()

    def to_json(self, result: TickResult) -> str:
        return json.dumps(self.format(result), indent=2, default=str)


def format_output(result: TickResult, style: str = "operator") -> str:
    if style == "json":
        return JsonFormatter().to_json(result)
    return OperatorFormatter().format(result)
