from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from gradeseer.core.context import STATUS_BELOW_TARGET, assemble_subject_context
from gradeseer.core.gpa import calc_subjects_gwa
from gradeseer.core.models import Subject
from gradeseer.core.numbers import format_number

MODE_SUBJECT = "subject"
MODE_DASHBOARD = "dashboard"
MODE_APP = "app"

MAX_MESSAGE_LENGTH = 500
UPCOMING_LIMIT = 10

DEFAULT_MESSAGES = {
    MODE_SUBJECT: "Analyze my current status and tell me what to focus on next.",
    MODE_DASHBOARD: "How is my semester looking?",
    MODE_APP: "How do I use GradeSeer?",
}

SYSTEM_PROMPT = """You are a strategic academic advisor and study coach for college students. Your job is to provide honest, empathetic, and actionable guidance on their grades and study strategies.

Your Personality:
- Direct but caring
- Conversational
- Contextual
- Proactive
- Encouraging but realistic

How You Respond:
1. Assess the Situation Honestly
2. Explain WHY, Not Just WHAT
3. Give Specific, Actionable Steps
4. Adapt Tone to Context
5. End with Engagement

What You DON'T Do:
- No repeated template formats
- No emoji bullet spam
- No generic advice
- No ignoring context
- Do not end without a call to action

Response Length:
- Short questions: 100-150 words
- Complex analysis: 200-300 words"""

ADVISOR_INSTRUCTION = "You are a helpful academic advisor. Respond in concise, actionable markdown."

APP_FALLBACK_RESPONSE = (
    "Ask me what you want to do in the app and I'll walk you through it step-by-step. "
    "What's your goal right now?"
)


@dataclass(frozen=True)
class UpcomingEntry:
    subject: str
    name: str
    date: Optional[str] = None


@dataclass
class DashboardData:
    subjects: List[Subject] = field(default_factory=list)
    upcoming: List[UpcomingEntry] = field(default_factory=list)


def normalize_message(message: Optional[str], mode: str) -> str:
    text = (message or "").strip()[:MAX_MESSAGE_LENGTH]
    return text or DEFAULT_MESSAGES.get(mode, DEFAULT_MESSAGES[MODE_APP])


def collect_upcoming(subjects: Iterable[Subject], limit: int = UPCOMING_LIMIT) -> List[UpcomingEntry]:
    """Pending items across subjects, latest due date first, undated last."""
    entries = [
        UpcomingEntry(subject=subject.name, name=item.name, date=item.date)
        for subject in subjects
        for item in subject.items
        if item.is_pending
    ]
    dated = sorted((e for e in entries if e.date), key=lambda e: e.date, reverse=True)
    undated = [e for e in entries if not e.date]
    return (dated + undated)[:limit]


def subjects_below_target(subjects: Iterable[Subject]) -> List[str]:
    names = []
    for subject in subjects:
        if not subject.has_target:
            continue
        ctx = assemble_subject_context(subject)
        if ctx["current_status"]["current_grade"] > subject.target_grade:
            names.append(subject.name)
    return names


def build_subject_context_block(subject: Subject) -> str:
    ctx = assemble_subject_context(subject)
    components_line = ", ".join(
        f"{c['name']} ({format_number(c['weight'])}%, avg {format_number(c['average_score'])})"
        for c in ctx["components"]
    ) or "None defined"
    upcoming_line = ", ".join(u["name"] for u in ctx["upcoming_assessments"]) or "None logged"
    target = ctx["subject"]["target_grade"]
    status = ctx["current_status"]

    return f"""Current Context: The user is viewing the "{subject.name}" subject page.

Available Data:
- Subject: {subject.name}
- Current Grade: {format_number(status['current_grade'])}
- Projected Grade: {format_number(status['projected_grade'])} (best case {format_number(status['best_case'])}, worst case {format_number(status['worst_case'])})
- Target Grade: {format_number(target) if target else 'Not set'}
- Completion: {status['percent_complete']}%
- Components: {components_line}
- Upcoming Assessments: {upcoming_line}

Your Role Here:
Focus specifically on this subject. Analyze performance, identify patterns, suggest strategies for THIS course, and help prioritize upcoming work in THIS subject."""


def build_dashboard_context_block(data: DashboardData) -> str:
    summary = calc_subjects_gwa(data.subjects)
    below = ", ".join(subjects_below_target(data.subjects)) or "None"
    upcoming = ", ".join(f"{u.subject}: {u.name}" for u in data.upcoming) or "None"

    return f"""Current Context: The user is on their main dashboard, viewing all subjects.

Available Data:
- Total Subjects: {len(data.subjects)}
- Overall Semester GWA: {format_number(summary.gwa)}
- Total Units: {format_number(summary.total_units)}
  - Subjects Below Target: {below}
  - High-Priority Upcoming: {upcoming}

Your Role Here:
Take a semester-wide strategic view. Help them prioritize across ALL subjects, manage GWA, balance units, navigate assessment clusters, and use GradeSeer effectively."""


def build_app_context_block() -> str:
    return """Current Context: The user is asking about how to use GradeSeer or app features.

Your Role Here:
Act as an onboarding guide and app tutorial assistant. Help them add subjects, log grades, understand dashboard metrics, set up targets and units, interpret AI insights, and troubleshoot features. Use simple language and offer step-by-step help."""


def build_prompt(message: str, mode: str, data: Any = None) -> str:
    if mode == MODE_SUBJECT and isinstance(data, Subject):
        context_block = build_subject_context_block(data)
    elif mode == MODE_DASHBOARD and isinstance(data, DashboardData):
        context_block = build_dashboard_context_block(data)
    else:
        context_block = build_app_context_block()

    return f"""{SYSTEM_PROMPT}

{context_block}

User's Message: "{message}"

Your Response:
(Provide a helpful, conversational, actionable response based on the context and data above. Be direct, empathetic, specific, and end with engagement.)"""


def render_subject_fallback(context: Dict[str, Any]) -> str:
    risks = sorted(
        (c for c in context["components"] if c["status"] == STATUS_BELOW_TARGET),
        key=lambda c: c["weight"],
        reverse=True,
    )[:3]
    upcoming = sorted(context["upcoming_assessments"], key=lambda u: u["weight"], reverse=True)[:3]
    delta = context["current_status"]["gap_to_target"]

    status = "On/above target" if delta <= 0 else "Below target"
    sign = "+" if delta > 0 else ""
    if upcoming:
        actions = "\n".join(
            f"{i}. {u['name']} ({u['component']}, {format_number(u['weight'])}% weight)"
            for i, u in enumerate(upcoming, 1)
        )
    else:
        actions = "No upcoming assessments"
    if risks:
        insights = "Risk components: " + ", ".join(
            f"{r['name']} ({format_number(r['weight'])}% weight)" for r in risks
        )
    else:
        insights = "No risk components detected"

    return "\n".join(
        [
            f"Status: {status} (gap {sign}{format_number(delta)})",
            "Next Actions:",
            actions,
            "Insights:",
            insights,
            "What's your next move?",
        ]
    )


def render_dashboard_fallback(data: DashboardData) -> str:
    below = subjects_below_target(data.subjects)
    lines = ["Status: Review semester-wide GWA and weakest subjects first."]
    lines.append(f"Needs attention: {', '.join(below)}" if below else "No subjects below target.")
    if data.upcoming:
        lines.append("Upcoming priorities: " + ", ".join(f"{u.subject}: {u.name}" for u in data.upcoming))
    else:
        lines.append("No upcoming assessments logged.")
    lines.append("What's your plan for the next exam?")
    return "\n".join(lines)
