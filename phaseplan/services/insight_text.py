"""
Phase Planning Platform
Insight Text Generator — natural-language texts for phase/project insights.

Pipeline per insight:
    1. not_started / completed phases → canned texts (no LLM call)
    2. LLM available → prompt → JSON {summary_text, detail_text, recommendation_text}
    3. LLM unavailable or failed → rule-based texts per status

Enhanced phase texts additionally carry a ``suggested_action``. The
LLM may propose one; otherwise it is derived from the availability and
weather context.
"""

import json
import logging
import re

from phaseplan.ai.gateway import DEFAULT_CHAT_MODEL
from phaseplan.analytics.types import (
    ConstructionRating,
    InsightStatus,
    SuggestedAction,
    SuggestedActionType,
    Trend,
)
from phaseplan.services.ports import (
    EnhancedPhaseTextInput,
    GeneratedTexts,
    NarrativeGenerator,
    PhaseTextInput,
    ProjectTextInput,
)

logger = logging.getLogger(__name__)

MAX_TOKENS = 500
SUGGESTED_ACTION_DAYS = 5

STATUS_LABELS = {
    InsightStatus.ON_TRACK: "On track",
    InsightStatus.AHEAD: "Ahead of schedule",
    InsightStatus.AT_RISK: "At risk",
    InsightStatus.BEHIND: "Behind schedule",
    InsightStatus.CRITICAL: "Critical",
    InsightStatus.NOT_STARTED: "Not started",
    InsightStatus.COMPLETED: "Completed",
    InsightStatus.UNKNOWN: "Unknown",
}

SYSTEM_PROMPT = (
    "You are a friendly project-management assistant for a timber construction "
    "company. Your tone is relaxed, motivating and to the point. Use fitting emojis."
)

_JSON_SHAPE = """Return exactly this JSON (no explanation, JSON only):
{
  "summary_text": "Short sentence (max 80 characters, with emoji)",
  "detail_text": "2-3 sentences with more detail",
  "recommendation_text": "Concrete recommendation"
}"""

_ENHANCED_JSON_SHAPE = """Return exactly this JSON (no explanation, JSON only):
{
  "summary_text": "Short sentence (max 80 characters, with emoji)",
  "detail_text": "2-3 sentences with more detail",
  "recommendation_text": "Concrete recommendation, naming people or weather where relevant",
  "suggested_action": {
    "type": "assign_user | reschedule | alert | none",
    "reason": "One sentence",
    "user_id": null,
    "user_name": null,
    "available_days": []
  }
}"""


def _h(hours) -> str:
    """Format an hour value: 12.0 → '12h', 7.25 → '7.3h'."""
    return f"{round(hours or 0, 1):g}h"


class InsightTextGenerator(NarrativeGenerator):
    """
    LLM-backed narrative generator with rule-based fallbacks.

    ``gateway`` is an LLMGateway (or anything with ``is_available(model)``
    and ``chat(messages, model, **kw)``); None means fallbacks only.
    """

    def __init__(self, gateway=None, model: str = DEFAULT_CHAT_MODEL):
        self.gateway = gateway
        self.model = model

    # ═════════════════════════════════════════════════════════════════════
    #  Public API
    # ═════════════════════════════════════════════════════════════════════

    def generate_phase_text(self, data: PhaseTextInput) -> GeneratedTexts:
        canned = self._canned_phase_texts(data)
        if canned is not None:
            return canned

        if self._llm_available():
            try:
                return self._ask(self._phase_prompt(data), purpose="phase_insight")
            except Exception as e:
                logger.warning("LLM phase text failed for '%s': %s", data.phase_name, e)

        return self.fallback_phase_texts(data)

    def generate_enhanced_phase_text(self, data: EnhancedPhaseTextInput) -> GeneratedTexts:
        canned = self._canned_phase_texts(data)
        if canned is not None:
            return canned

        if self._llm_available():
            try:
                texts = self._ask(
                    self._enhanced_prompt(data),
                    purpose="phase_insight_enhanced",
                    with_action=True,
                )
                if texts.suggested_action is None:
                    texts.suggested_action = self.suggest_action(data)
                return texts
            except Exception as e:
                logger.warning("LLM enhanced text failed for '%s': %s", data.phase_name, e)

        texts = self.fallback_phase_texts(data)
        texts.suggested_action = self.suggest_action(data)
        if texts.suggested_action.type == SuggestedActionType.ASSIGN_USER:
            texts.recommendation_text = texts.suggested_action.reason
        return texts

    def generate_project_text(self, data: ProjectTextInput) -> GeneratedTexts:
        if self._llm_available():
            try:
                return self._ask(self._project_prompt(data), purpose="project_insight")
            except Exception as e:
                logger.warning("LLM project text failed for '%s': %s", data.project_name, e)

        return self.fallback_project_texts(data)

    # ═════════════════════════════════════════════════════════════════════
    #  LLM
    # ═════════════════════════════════════════════════════════════════════

    def _llm_available(self) -> bool:
        return self.gateway is not None and self.gateway.is_available(self.model)

    def _ask(self, prompt: str, *, purpose: str, with_action: bool = False) -> GeneratedTexts:
        result = self.gateway.chat(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            self.model,
            purpose=purpose,
            max_tokens=MAX_TOKENS,
        )
        parsed = self._parse_response(result["content"])
        texts = GeneratedTexts(
            summary_text=str(parsed.get("summary_text") or ""),
            detail_text=str(parsed.get("detail_text") or ""),
            recommendation_text=str(parsed.get("recommendation_text") or ""),
        )
        if with_action and isinstance(parsed.get("suggested_action"), dict):
            texts.suggested_action = SuggestedAction.from_dict(parsed["suggested_action"])
        return texts

    @staticmethod
    def _parse_response(content: str) -> dict:
        """Extract the first {...} block; raise ValueError when none parses."""
        cleaned = content.strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r"^```\w*\n?", "", cleaned)
            cleaned = re.sub(r"\n?```$", "", cleaned)

        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            raise ValueError("No JSON found in response")
        parsed = json.loads(match.group())
        if not isinstance(parsed, dict):
            raise ValueError("JSON response is not an object")
        return parsed

    # ── Prompts ──────────────────────────────────────────────────────────

    @staticmethod
    def _phase_facts(data: PhaseTextInput) -> list[str]:
        trend_emoji = {Trend.UP: "📈", Trend.DOWN: "📉"}.get(data.burn_rate_trend, "➡️")
        lines = [
            f"PHASE: {data.phase_name}",
            f"PROJECT: {data.project_name}",
            (f"DEADLINE: {data.deadline.isoformat()} (in {data.days_until_deadline} working days)"
             if data.deadline else "DEADLINE: not set"),
            "",
            "HOURS:",
            f"- Budget: {_h(data.budget_hours)}",
            f"- Actual: {_h(data.actual_hours)} ({data.progress_percent}%)",
            f"- Remaining: {_h(data.remaining_hours)}",
            f"- Planned: {_h(data.planned_hours)}",
            "",
            (f"BURN RATE: {data.burn_rate_actual:.1f}h/day {trend_emoji} "
             f"(trend: {data.burn_rate_trend.value if data.burn_rate_trend else 'stable'})"
             if data.burn_rate_actual else "BURN RATE: not enough data yet"),
            "",
            f"STATUS: {STATUS_LABELS.get(data.status, data.status.value)}",
        ]
        if data.deadline_delta_actual is not None:
            if data.deadline_delta_actual > 0:
                lines.append(f"FORECAST: {data.deadline_delta_actual} days late")
            else:
                lines.append(f"FORECAST: {abs(data.deadline_delta_actual)} days early")
        return lines

    def _phase_prompt(self, data: PhaseTextInput) -> str:
        return "\n".join(self._phase_facts(data) + ["", _JSON_SHAPE])

    def _enhanced_prompt(self, data: EnhancedPhaseTextInput) -> str:
        lines = self._phase_facts(data)
        if data.project_address:
            lines.append(f"SITE: {data.project_address}")
        if data.project_description:
            lines.append(f"DESCRIPTION: {data.project_description}")

        if data.availability and data.availability.available_users:
            lines += ["", "AVAILABLE STAFF:"]
            for user in data.availability.available_users:
                days = ", ".join(d.isoformat() for d in user.available_days)
                lines.append(
                    f"- {user.name} (id {user.id}): {_h(user.available_hours)} free, "
                    f"{user.utilization_percent}% utilised; days: {days}"
                )
        if data.availability and data.availability.overloaded_users:
            lines += ["", "OVERLOADED STAFF:"]
            lines += [f"- {u.name}: {u.utilization_percent}%"
                      for u in data.availability.overloaded_users]

        if data.weather and data.weather.days:
            lines += ["", "WEATHER (next days):"]
            for day in data.weather.days:
                lines.append(
                    f"- {day.date.isoformat()}: {day.description}, "
                    f"{day.temp_min:g}–{day.temp_max:g}°C, rain {day.precipitation_probability:g}%, "
                    f"wind {day.wind_speed_max:g} km/h → {day.construction_rating.value}"
                )

        lines += ["", _ENHANCED_JSON_SHAPE]
        return "\n".join(lines)

    @staticmethod
    def _project_prompt(data: ProjectTextInput) -> str:
        lines = [
            f"PROJECT: {data.project_name}",
            "",
            "HOURS:",
            f"- Budget: {_h(data.total_budget_hours)}",
            f"- Actual: {_h(data.total_actual_hours)} ({data.overall_progress_percent}%)",
            f"- Remaining: {_h(data.total_remaining_hours)}",
            "",
            f"PHASES ({data.phases_count} total):",
            f"- On track: {data.phases_on_track}",
            f"- At risk: {data.phases_at_risk}",
            f"- Behind: {data.phases_behind}",
            f"- Completed: {data.phases_completed}",
            "",
            f"STATUS: {STATUS_LABELS.get(data.status, data.status.value)}",
        ]
        if data.projected_completion_date:
            lines.append(f"PROJECTED COMPLETION: {data.projected_completion_date.isoformat()}")
        if data.project_deadline_delta is not None:
            delay = f"{data.project_deadline_delta} days" if data.project_deadline_delta > 0 else "none"
            lines.append(f"DELAY: {delay}")
        lines += ["", _JSON_SHAPE]
        return "\n".join(lines)

    # ═════════════════════════════════════════════════════════════════════
    #  Canned & fallback texts
    # ═════════════════════════════════════════════════════════════════════

    @staticmethod
    def _canned_phase_texts(data: PhaseTextInput) -> GeneratedTexts | None:
        if data.status == InsightStatus.NOT_STARTED:
            detail = ("The phase has not started yet. Forecasts and recommendations "
                      "appear here as soon as hours are booked.")
            if data.deadline:
                detail += (f" Deadline: {data.deadline.isoformat()} "
                           f"({data.days_until_deadline or 0} working days left).")
            return GeneratedTexts(
                summary_text=f"🚀 {data.phase_name}: no hours booked yet",
                detail_text=detail,
                recommendation_text="Get going! Progress shows up here once work starts.",
            )

        if data.status == InsightStatus.COMPLETED:
            diff = (data.budget_hours or 0) - (data.actual_hours or 0)
            if diff >= 0:
                budget_text = f"{diff:.0f}h under budget!"
                emoji = "🎉"
            else:
                budget_text = f"{abs(diff):.0f}h over budget."
                emoji = "📊"
            return GeneratedTexts(
                summary_text=f"✅ {data.phase_name}: done! {emoji}",
                detail_text=f"The phase is complete. {budget_text}",
                recommendation_text="Time for a quick retrospective: what went well, what can improve?",
            )
        return None

    @staticmethod
    def fallback_phase_texts(data: PhaseTextInput) -> GeneratedTexts:
        name = data.phase_name
        progress = data.progress_percent
        remaining = _h(data.remaining_hours)
        delta = data.deadline_delta_actual

        if data.status == InsightStatus.AHEAD:
            return GeneratedTexts(
                summary_text=f"🚀 {name}: {abs(delta or 0)} days ahead of plan!",
                detail_text=f"At {progress}% the phase is well ahead of schedule. {remaining} remaining.",
                recommendation_text="Keep it up! The days saved are valuable buffer.",
            )
        if data.status == InsightStatus.ON_TRACK:
            return GeneratedTexts(
                summary_text=f"✅ {name}: on schedule!",
                detail_text=f"{progress}% done, {remaining} remaining. Everything is going to plan.",
                recommendation_text="Stay the course, you're doing great! 💪",
            )
        if data.status == InsightStatus.AT_RISK:
            return GeneratedTexts(
                summary_text=f"⚠️ {name}: slightly delayed",
                detail_text=(f"At {progress}% a small delay of "
                             f"{delta or 'a few'} days is looming."),
                recommendation_text="Check whether additional capacity can be scheduled.",
            )
        if data.status == InsightStatus.BEHIND:
            return GeneratedTexts(
                summary_text=f"🔶 {name}: {delta or 'several'} days behind plan",
                detail_text=f"The phase is behind at {progress}%. {remaining} remaining.",
                recommendation_text="Time for a sprint! Shift resources or review the scope.",
            )
        if data.status == InsightStatus.CRITICAL:
            return GeneratedTexts(
                summary_text=f"🔴 {name}: critical, {delta or 'heavy'} days delay!",
                detail_text=f"With only {progress}% done and {remaining} open, the situation is serious.",
                recommendation_text="Act now: reduce the scope or add people to the team.",
            )
        return GeneratedTexts(
            summary_text=f"📊 {name}: {progress}% done",
            detail_text=f"{remaining} remaining. More precise forecasts follow in a few days.",
            recommendation_text="Collecting data; sharper estimates are coming soon.",
        )

    @staticmethod
    def fallback_project_texts(data: ProjectTextInput) -> GeneratedTexts:
        name = data.project_name
        progress = data.overall_progress_percent
        problem_phases = data.phases_at_risk + data.phases_behind

        if data.status in (InsightStatus.CRITICAL, InsightStatus.BEHIND):
            return GeneratedTexts(
                summary_text=f"🔶 {name}: {problem_phases} phases need attention",
                detail_text=(f"At {progress}% overall progress action is needed. "
                             f"{data.phases_behind} phases are behind, {data.phases_at_risk} at risk."),
                recommendation_text="Prioritise the critical phases and re-plan resources.",
            )
        if data.status == InsightStatus.AT_RISK:
            return GeneratedTexts(
                summary_text=f"⚠️ {name}: keep an eye on some phases",
                detail_text=f"{progress}% done. {data.phases_at_risk} phases could cause delays.",
                recommendation_text="Steer early: small adjustments now save time later.",
            )
        return GeneratedTexts(
            summary_text=f"✅ {name}: {progress}%, going well!",
            detail_text=(f"The project is making good progress. "
                         f"{data.phases_on_track} of {data.phases_count} phases are on track."),
            recommendation_text="Keep it up and check progress regularly.",
        )

    # ── Suggested action ─────────────────────────────────────────────────

    @staticmethod
    def suggest_action(data: EnhancedPhaseTextInput) -> SuggestedAction:
        """
        Rule-based next step, first match wins:
            1. at_risk/behind/critical and someone is free → assign_user (top user)
            2. behind/critical and nobody is free          → alert
            3. at_risk and a poor site day is forecast      → reschedule
            4. otherwise                                    → none
        """
        needs_help = data.status in (
            InsightStatus.AT_RISK, InsightStatus.BEHIND, InsightStatus.CRITICAL,
        )
        available = data.availability.available_users if data.availability else []

        if needs_help and available:
            top = available[0]
            days = [d.isoformat() for d in top.available_days[:SUGGESTED_ACTION_DAYS]]
            return SuggestedAction(
                type=SuggestedActionType.ASSIGN_USER,
                reason=(f"{top.name} has {_h(top.available_hours)} free and could "
                        f"support {data.phase_name}."),
                user_id=top.id,
                user_name=top.name,
                available_days=days,
            )

        if data.status in (InsightStatus.BEHIND, InsightStatus.CRITICAL):
            return SuggestedAction(
                type=SuggestedActionType.ALERT,
                reason=f"{data.phase_name} is behind and nobody is free to help.",
            )

        if data.status == InsightStatus.AT_RISK and data.weather:
            poor = [d for d in data.weather.days
                    if d.construction_rating == ConstructionRating.POOR]
            if poor:
                return SuggestedAction(
                    type=SuggestedActionType.RESCHEDULE,
                    reason=(f"Poor site weather on {poor[0].date.isoformat()} "
                            f"({poor[0].description}); plan indoor work or shift the schedule."),
                    available_days=[d.date.isoformat() for d in poor],
                )

        return SuggestedAction(type=SuggestedActionType.NONE, reason="No action needed.")
