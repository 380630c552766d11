"""Markdown formatting of engine state for the operator console."""

from typing import List, Optional

import pytz

from models.entities import InterviewerCapacity, InterviewInstance, RankedRequest, SlaStatus, Slot
from models.intents import OperatorItem, SwapProposal

SLA_ICONS = {
    SlaStatus.ON_TRACK: "🟢",
    SlaStatus.AT_RISK: "🟠",
    SlaStatus.OVERDUE: "🔴",
}

TIER_ICONS = {
    "Critical": "🔥",
    "High": "⬆️",
    "Medium": "➖",
    "Low": "⬇️",
}


class ReportFormatter:
    """Formats engine state in a consistent, structured manner."""

    @staticmethod
    def format_section(title: str, content: List[str], icon: str = "📋") -> str:
        """Format a section with title and content."""
        lines = [f"**{icon} {title}**", ""]
        lines.extend(content)
        return "\n".join(lines)

    @staticmethod
    def format_slot(slot: Slot, timezone: str = "UTC") -> str:
        """Slot start in a participant's timezone, e.g. 'Tuesday, March 03, 10:00 AM IST'."""
        local = slot.start.astimezone(pytz.timezone(timezone))
        return f"{local.strftime('%A, %B %d, %I:%M %p')} {local.tzname()} ({slot.duration_minutes} min)"

    @staticmethod
    def format_queue(entries: List[RankedRequest]) -> str:
        if not entries:
            return ReportFormatter.format_info("Queue Empty", "No pending scheduling requests.")
        lines = []
        for entry in entries:
            icon = TIER_ICONS.get(entry.tier, "")
            pin = " 📌 *override*" if entry.pinned else ""
            score = entry.score
            lines.append(
                f"{entry.position}. {icon} **{entry.request.candidate_id}** ({entry.request.round_name}) "
                f"**{score.total:.1f}** {entry.tier}{pin}"
            )
            lines.append(
                f"   urgency {score.urgency:g} · stage {score.pipeline_stage:g} · "
                f"availability {score.availability:g} · load {score.interviewer_load:g}"
            )
            if entry.request.override_reason:
                lines.append(f"   reason: {entry.request.override_reason}")
        return ReportFormatter.format_section("Scheduling Queue", lines, "🗂️")

    @staticmethod
    def format_load(capacities: List[InterviewerCapacity]) -> str:
        if not capacities:
            return ReportFormatter.format_info("No Interviewers", "The directory has not been loaded yet.")
        lines = []
        for c in sorted(capacities, key=lambda c: -c.load_percentage):
            backup = " · backup panel" if c.is_backup_panel else ""
            lines.append(
                f"• **{c.name}** ({c.role}, {c.seniority}) {c.load_badge} {c.load_percentage:.0f}% · "
                f"today {c.interviews_today}/{c.daily_limit} · week {c.interviews_this_week}/{c.weekly_limit} · "
                f"fatigue {c.fatigue_score:.0f}{backup}"
            )
            for violation in c.soft_violations:
                lines.append(f"   ⚠️ {violation}")
        return ReportFormatter.format_section("Interviewer Load", lines, "📊")

    @staticmethod
    def format_interviews(instances: List[InterviewInstance]) -> str:
        if not instances:
            return ReportFormatter.format_info("No Interviews", "Nothing has been scheduled yet.")
        lines = []
        for instance in sorted(instances, key=lambda i: (i.slot.start, i.interview_id)):
            icon = SLA_ICONS.get(instance.sla_status, "")
            lines.append(
                f"• {icon} **{instance.interview_id}** {instance.candidate_id} · {instance.round_name} · "
                f"{instance.current_state.value} · with {', '.join(instance.interviewer_ids)}"
            )
            lines.append(f"   {ReportFormatter.format_slot(instance.slot)}")
            if instance.sla_deadline is not None:
                deadline = instance.sla_deadline.strftime("%Y-%m-%d %H:%M UTC")
                lines.append(f"   SLA {instance.sla_status.value} · due {deadline}")
        return ReportFormatter.format_section("Interviews", lines, "📅")

    @staticmethod
    def format_operator_items(items: List[OperatorItem]) -> str:
        if not items:
            return ReportFormatter.format_success("All Clear", "Nothing needs an operator right now.")
        lines = []
        for i, item in enumerate(items, 1):
            retry = " (retryable)" if item.retryable else ""
            lines.append(f"{i}. **{item.kind}** · {item.entity_type} {item.entity_id or '-'}{retry}")
            lines.append(f"   {item.reason}")
        return ReportFormatter.format_section("Operator Queue", lines, "🧑‍💼")

    @staticmethod
    def format_swap_proposal(proposal: SwapProposal) -> str:
        return "\n".join([
            f"**🔄 Swap for {proposal.interview_id}**",
            f"• Backup: **{proposal.candidate_id}** replaces {proposal.original_candidate_id}",
            f"• Slot: {proposal.slot_id}",
            f"• Priority {proposal.priority_score:.1f} · availability match {proposal.availability_match:.0f}%",
        ])

    @staticmethod
    def format_success(title: str, message: str, details: Optional[List[str]] = None) -> str:
        """Format a success message."""
        lines = [
            f"**✅ {title}**",
            "",
            message
        ]

        if details:
            lines.append("")
            lines.append("**Details:**")
            for detail in details:
                lines.append(f"• {detail}")

        return "\n".join(lines)

    @staticmethod
    def format_error(title: str, message: str, suggestions: Optional[List[str]] = None) -> str:
        """Format an error message."""
        lines = [
            f"**❌ {title}**",
            "",
            message
        ]

        if suggestions:
            lines.append("")
            lines.append("**Suggestions:**")
            for suggestion in suggestions:
                lines.append(f"• {suggestion}")

        return "\n".join(lines)

    @staticmethod
    def format_info(title: str, message: str, items: Optional[List[str]] = None) -> str:
        """Format an informational message."""
        lines = [
            f"**ℹ️ {title}**",
            "",
            message
        ]

        if items:
            lines.append("")
            for item in items:
                lines.append(f"• {item}")

        return "\n".join(lines)
