from __future__ import annotations

from quest_penalty.models import RepeatPolicy
from quest_penalty.service import DamageSummary

POLICY_LABELS = {
    RepeatPolicy.DAILY: "Daily",
    RepeatPolicy.WEEKLY: "Weekly",
    RepeatPolicy.ONE_TIME: "One-time",
    RepeatPolicy.SCHEDULED: "Scheduled",
}


def damage_summary_message(summary: DamageSummary) -> str:
    if summary.total_damage <= 0:
        text = f"No neglect damage on {summary.damage_date.isoformat()}."
        if summary.failed_quests:
            text += f" {summary.failed_quests} quest(s) will be re-checked next run."
        return text

    lines = [
        f"💥 {summary.total_damage} damage from {summary.quests_affected} neglected quest(s) "
        f"on {summary.damage_date.isoformat()}",
    ]
    if summary.delivered_damage != summary.total_damage:
        lines.append(f"Applied to health: {summary.delivered_damage}")
    lines.append("")
    for item in summary.items:
        label = POLICY_LABELS.get(item.repeat_policy, str(item.repeat_policy))
        lines.append(f"• [{label}] {item.title}: -{item.amount} ({item.reason})")
    if summary.failed_quests:
        lines.append("")
        lines.append(f"⚠️ {summary.failed_quests} quest(s) could not be saved and will be re-checked next run.")
    return "\n".join(lines)
