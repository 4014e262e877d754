"""
Digest Aggregator: weekly trend report over a user's question history.

Everything here is a pure function of the questions, the current weights and
`now`; the service layer does the reading and the optional caching.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Literal, Sequence

from pydantic import BaseModel, Field

from insight_engine.engine.pillars import ALL_PILLARS, Pillar
from insight_engine.engine.schemas import QuestionRecord
from insight_engine.engine.weights import PillarWeights
from insight_engine.models.question import QuestionStatus

Trend = Literal["up", "down", "stable"]

MAX_ACTION_ITEMS = 3
MAX_NEXT_WEEK_FOCUS = 2
DIVERSIFY_SHARE_THRESHOLD = 60.0


class TopPillar(BaseModel):
    pillar: Pillar
    weight: float
    share_percent: float
    question_count: int


class PillarInsight(BaseModel):
    pillar: Pillar
    title: str
    summary: str
    trend: Trend
    recommendation: str
    supporting_questions: list[str] = Field(default_factory=list, max_length=3)


class DigestReport(BaseModel):
    """Read-only weekly report; recomputed on demand."""

    user_id: str
    week_start: date
    week_end: date
    generated_at: datetime
    total_questions: int
    top_pillars: list[TopPillar] = Field(default_factory=list, max_length=3)
    insights: list[PillarInsight] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list, max_length=MAX_ACTION_ITEMS)
    next_week_focus: list[str] = Field(default_factory=list, max_length=MAX_NEXT_WEEK_FOCUS)


# Summary templates; {count} is the number of questions for the pillar
PATTERN_SUMMARIES: dict[Pillar, str] = {
    Pillar.ENGAGEMENT: (
        "{count} engagement-focused questions this week suggest active user behavior "
        "monitoring. Key areas include user interaction patterns and feature adoption."
    ),
    Pillar.RETENTION: (
        "{count} retention queries indicate focus on user lifecycle management. "
        "Analysis covers cohort performance and churn prevention strategies."
    ),
    Pillar.MONETIZATION: (
        "{count} revenue-related questions show strong commercial focus. "
        "Areas include conversion optimization and revenue stream analysis."
    ),
    Pillar.STORE: (
        "{count} app store questions indicate distribution channel optimization. "
        "Focus on store performance and visibility metrics."
    ),
    Pillar.USER_ACQUISITION: (
        "{count} acquisition questions suggest growth strategy evaluation. "
        "Areas include channel effectiveness and cost optimization."
    ),
    Pillar.TECH_HEALTH: (
        "{count} technical questions indicate infrastructure monitoring needs. "
        "Focus on performance and system health."
    ),
    Pillar.SOCIAL: (
        "{count} social media questions show community engagement focus. "
        "Areas include social metrics and brand presence analysis."
    ),
}

RECOMMENDATIONS: dict[Pillar, dict[Trend, str]] = {
    Pillar.ENGAGEMENT: {
        "up": "Implement advanced engagement tracking and A/B testing for feature optimization.",
        "down": "Review engagement measurement strategy and establish baseline metrics.",
        "stable": "Maintain current engagement analysis while exploring new interaction patterns.",
    },
    Pillar.RETENTION: {
        "up": "Develop comprehensive cohort analysis dashboard and predictive churn models.",
        "down": "Focus on fundamental retention metrics and user lifecycle mapping.",
        "stable": "Enhance retention tracking with behavioral segmentation analysis.",
    },
    Pillar.MONETIZATION: {
        "up": "Optimize pricing strategies and implement advanced revenue attribution.",
        "down": "Establish core revenue tracking and conversion funnel analysis.",
        "stable": "Expand monetization analysis with customer lifetime value modeling.",
    },
}

TREND_LABELS: dict[Trend, str] = {"up": "Rising", "down": "Declining", "stable": "Steady"}


def in_window(question: QuestionRecord, start: datetime, end: datetime) -> bool:
    return start <= question.created_at < end


def calculate_trend(chronological: Sequence[QuestionRecord]) -> Trend:
    """
    Compare the later half of a pillar's questions against the earlier half.

    The split is at floor(n/2), so an odd count puts the extra question in
    the second half.
    """
    n = len(chronological)
    if n < 2:
        return "stable"
    first = n // 2
    second = n - first
    if second > first * 1.2:
        return "up"
    if second < first * 0.8:
        return "down"
    return "stable"


def pillar_summary(pillar: Pillar, count: int) -> str:
    template = PATTERN_SUMMARIES.get(pillar)
    if template is None:
        return f"{count} questions analyzed for {pillar.value} insights."
    return template.format(count=count)


def pillar_recommendation(pillar: Pillar, trend: Trend) -> str:
    by_trend = RECOMMENDATIONS.get(pillar, {})
    return by_trend.get(trend) or f"Continue monitoring {pillar.value} metrics and expand analysis scope."


def insight_title(pillar: Pillar, share_percent: float, trend: Trend) -> str:
    name = pillar.value[0].upper() + pillar.value[1:]
    return f"{TREND_LABELS[trend]} {name} Focus ({share_percent:g}% of questions)"


def rank_pillars(
    questions: Sequence[QuestionRecord],
    weights: PillarWeights,
    top_n: int = 3,
) -> tuple[list[TopPillar], dict[Pillar, list[QuestionRecord]]]:
    """
    Group questions by primary pillar and rank by share of the week.

    Questions without an intent count toward the total but belong to no
    pillar. Ties keep taxonomy order.
    """
    total = len(questions)
    grouped: dict[Pillar, list[QuestionRecord]] = defaultdict(list)
    for question in questions:
        if question.intent is not None:
            grouped[question.intent.primary_pillar].append(question)

    ranked = sorted(
        (p for p in ALL_PILLARS if grouped.get(p)),
        key=lambda p: len(grouped[p]),
        reverse=True,
    )

    top = [
        TopPillar(
            pillar=pillar,
            weight=weights[pillar],
            share_percent=round(len(grouped[pillar]) / total * 100, 1),
            question_count=len(grouped[pillar]),
        )
        for pillar in ranked[:top_n]
    ]
    return top, dict(grouped)


def action_items(top: Sequence[TopPillar], insights: Sequence[PillarInsight]) -> list[str]:
    items: list[str] = []
    if top:
        items.append(f"Focus on {top[0].pillar.value} optimization ({top[0].share_percent:g}% of weekly focus)")

    for insight in insights:
        if insight.trend == "up":
            items.append(f"Scale {insight.pillar.value} analysis infrastructure")
        elif insight.trend == "down":
            items.append(f"Reinvigorate {insight.pillar.value} monitoring strategy")

    if top and top[0].share_percent > DIVERSIFY_SHARE_THRESHOLD:
        items.append("Consider diversifying analytics focus across multiple pillars")

    return items[:MAX_ACTION_ITEMS]


def next_week_focus(top: Sequence[TopPillar]) -> list[str]:
    suggestions: list[str] = []
    active = {t.pillar for t in top}

    unexplored = [p for p in ALL_PILLARS if p not in active]
    if unexplored:
        suggestions.append(f"Explore {unexplored[0].value} metrics for balanced analytics")

    if top:
        suggestions.append(f"Implement advanced {top[0].pillar.value} segmentation analysis")

    if len(top) >= 2:
        suggestions.append(
            f"Analyze correlation between {top[0].pillar.value} and {top[1].pillar.value} metrics"
        )

    return suggestions[:MAX_NEXT_WEEK_FOCUS]


def build_digest(
    user_id: str,
    questions: Sequence[QuestionRecord],
    weights: PillarWeights,
    now: datetime,
    window_days: int = 7,
    top_n: int = 3,
) -> DigestReport:
    """
    Build the digest for `[now - window_days, now)`.

    Cancelled questions and questions outside the window are ignored, so the
    caller may pass a superset. An empty window yields an empty report.
    """
    start = now - timedelta(days=window_days)
    weekly = sorted(
        (
            q for q in questions
            if q.status != QuestionStatus.CANCELLED.value and in_window(q, start, now)
        ),
        key=lambda q: q.created_at,
    )

    top: list[TopPillar] = []
    insights: list[PillarInsight] = []
    if weekly:
        top, grouped = rank_pillars(weekly, weights, top_n=min(top_n, 3))
        for entry in top:
            pillar_questions = grouped[entry.pillar]
            trend = calculate_trend(pillar_questions)
            insights.append(
                PillarInsight(
                    pillar=entry.pillar,
                    title=insight_title(entry.pillar, entry.share_percent, trend),
                    summary=pillar_summary(entry.pillar, len(pillar_questions)),
                    trend=trend,
                    recommendation=pillar_recommendation(entry.pillar, trend),
                    supporting_questions=[q.text for q in pillar_questions[:3]],
                )
            )

    return DigestReport(
        user_id=user_id,
        week_start=start.date(),
        week_end=now.date(),
        generated_at=now,
        total_questions=len(weekly),
        top_pillars=top,
        insights=insights,
        action_items=action_items(top, insights),
        next_week_focus=next_week_focus(top),
    )


def digest_window(now: datetime, window_days: int = 7) -> tuple[datetime, datetime]:
    return now - timedelta(days=window_days), now

