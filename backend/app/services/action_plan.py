"""Shipping action plan: competitive grade and threshold options.

The grade compares the site's free-shipping threshold with the average of
the competitors' positive thresholds:

    ratio <= 0.7 A+ | <= 1.0 A- | <= 1.3 B+ | <= 1.6 B- |
    <= 2.0 C+ | <= 2.5 C- | <= 3.0 D+ | otherwise F

Free shipping on all orders is always A+, no competitor data is B, and
an unknown site threshold counts as $999.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

DEFAULT_AVERAGE = 75.0
MINIMUM_THRESHOLD_OPTION = 25
UNKNOWN_USER_THRESHOLD = 999.0

# (max ratio to competitor average, grade, message)
GRADE_BANDS: list[tuple[float, str, str]] = [
    (0.7, "A+", "Highly competitive shipping strategy!"),
    (1.0, "A-", "Strong competitive position in shipping."),
    (1.3, "B+", "Good shipping strategy with room for improvement."),
    (1.6, "B-", "Moderate shipping competitiveness."),
    (2.0, "C+", "Shipping strategy needs improvement."),
    (2.5, "C-", "Below average shipping competitiveness."),
    (3.0, "D+", "Shipping strategy significantly behind competitors."),
]
FAILING_GRADE = ("F", "Shipping strategy needs major improvement.")

OPTIMAL_POLICIES = [
    "Continue offering free shipping on all orders to maintain your advantage",
    "Highlight free shipping prominently on your website",
    "Make sure product pricing accounts for shipping costs",
]

STANDARD_POLICIES = [
    "Offer a 30-day return window to match industry standards",
    "Provide expedited shipping options (2-3 day delivery)",
    "Include order tracking and delivery notifications",
]


@dataclass(frozen=True)
class CompetitiveGrade:
    grade: str
    message: str
    is_optimal: bool = False


@dataclass(frozen=True)
class ThresholdOption:
    label: str
    amount: int
    description: str


@dataclass(frozen=True)
class ActionPlan:
    """Everything the report email needs beyond the stored analysis."""

    grade: CompetitiveGrade
    average_threshold: float
    options: list[ThresholdOption] = field(default_factory=list)
    policies: list[str] = field(default_factory=list)


def _known_positive(thresholds: Iterable[float | None]) -> list[float]:
    return [t for t in thresholds if t is not None and t > 0]


def competitive_grade(
    user_threshold: float | None,
    competitor_thresholds: Iterable[float | None],
) -> CompetitiveGrade:
    """Grade the site's threshold against its competitors."""
    if user_threshold == 0:
        return CompetitiveGrade(
            grade="A+",
            message=(
                "Excellent! You already offer the best shipping incentive: "
                "free shipping on all orders."
            ),
            is_optimal=True,
        )

    known = _known_positive(competitor_thresholds)
    if not known:
        return CompetitiveGrade(
            grade="B", message="Limited competitor data available for comparison."
        )

    average = sum(known) / len(known)
    ratio = (user_threshold or UNKNOWN_USER_THRESHOLD) / average
    for limit, grade, message in GRADE_BANDS:
        if ratio <= limit:
            return CompetitiveGrade(grade=grade, message=message)
    return CompetitiveGrade(grade=FAILING_GRADE[0], message=FAILING_GRADE[1])


def threshold_options(average: float | None) -> list[ThresholdOption]:
    """Three threshold tiers relative to the competitor average."""
    base = average or DEFAULT_AVERAGE
    tiers = [
        ("highly", 0.7, "Highly Competitive - Undercut competitors significantly"),
        ("moderate", 0.85, "Moderately Competitive - Stay competitive while maintaining margins"),
        ("low", 1.0, "Low Competitive - Match market average"),
    ]
    return [
        ThresholdOption(
            label=label,
            amount=max(MINIMUM_THRESHOLD_OPTION, math.floor(base * factor)),
            description=description,
        )
        for label, factor, description in tiers
    ]


def build_action_plan(
    user_threshold: float | None,
    competitor_thresholds: Iterable[float | None],
) -> ActionPlan:
    """Build the grade, threshold options and policy suggestions."""
    thresholds = list(competitor_thresholds)
    grade = competitive_grade(user_threshold, thresholds)
    known = _known_positive(thresholds)
    average = sum(known) / len(known) if known else DEFAULT_AVERAGE

    if grade.is_optimal:
        return ActionPlan(
            grade=grade,
            average_threshold=round(average, 2),
            options=[
                ThresholdOption(
                    label="maintain",
                    amount=0,
                    description="Maintain Current Strategy - free shipping on all orders",
                )
            ],
            policies=list(OPTIMAL_POLICIES),
        )

    return ActionPlan(
        grade=grade,
        average_threshold=round(average, 2),
        options=threshold_options(average),
        policies=list(STANDARD_POLICIES),
    )
