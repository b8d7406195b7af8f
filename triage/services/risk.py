"""
Risk scoring and care recommendation.

Key decisions:
- Deterministic: a weighted rule sum with no randomness or clock reads, so
  re-scoring an unchanged state gives an identical assessment.
- Transparent: every rule that fires is kept as a RuleFiring, in rule order, and
  shown to the user.
- Table-driven: scoring rules and the recommendation decision table are data;
  adding a rule does not touch the evaluation loop.
"""

from collections.abc import Callable
from dataclasses import dataclass

import structlog

from triage.domain.models import (
    CareMethod,
    ConversationState,
    Message,
    MessageType,
    ProfileContext,
    Recommendation,
    RiskAssessment,
    RiskLevel,
    RuleFiring,
    Tone,
)
from triage.services.personalization import (
    count_matching_sessions,
    is_repeated_symptom,
    join_names,
    possessive,
    subject,
    subject_is,
)

logger = structlog.get_logger(__name__)

HIGH_RISK_THRESHOLD = 4
MEDIUM_RISK_THRESHOLD = 2


@dataclass(frozen=True)
class ScoringRule:
    """Adds ``points`` to the risk score when ``applies`` holds."""

    rule_id: str
    points: int
    applies: Callable[[ConversationState, ProfileContext], bool]
    explain: Callable[[ConversationState, ProfileContext], str]


def _severity_at_least(threshold: int, below: int | None = None) -> Callable[..., bool]:
    def check(state: ConversationState, profile: ProfileContext) -> bool:
        if state.severity is None or state.severity < threshold:
            return False
        return below is None or state.severity < below

    return check


def _capitalized(text: str) -> str:
    return text[:1].upper() + text[1:]


def _has_persisted(state: ConversationState, profile: ProfileContext) -> bool:
    duration = state.duration.lower()
    return "week" in duration or "days" in duration


SCORING_RULES: tuple[ScoringRule, ...] = (
    ScoringRule(
        rule_id="severity_high",
        points=2,
        applies=_severity_at_least(7),
        explain=lambda s, p: "Severity rating indicates significant distress",
    ),
    ScoringRule(
        rule_id="severity_moderate",
        points=1,
        applies=_severity_at_least(4, below=7),
        explain=lambda s, p: "Moderate severity reported",
    ),
    ScoringRule(
        rule_id="persistent_duration",
        points=1,
        applies=_has_persisted,
        explain=lambda s, p: "Symptoms have persisted beyond typical acute timeframe",
    ),
    ScoringRule(
        rule_id="red_flags",
        points=2,
        applies=lambda s, p: len(s.red_flags) > 0,
        explain=lambda s, p: f"Warning signs present: {', '.join(s.red_flags)}",
    ),
    ScoringRule(
        rule_id="elder",
        points=1,
        applies=lambda s, p: p.is_elder,
        explain=lambda s, p: (
            f"At age {p.age}, we use a lower threshold for professional evaluation"
        ),
    ),
    ScoringRule(
        rule_id="chronic_conditions",
        points=1,
        applies=lambda s, p: p.has_conditions,
        explain=lambda s, p: (
            f"{_capitalized(possessive(p))} {join_names(p.conditions)} requires extra caution"
        ),
    ),
    # Advisory only: shapes later medication checks, not the score
    ScoringRule(
        rule_id="multiple_medications",
        points=0,
        applies=lambda s, p: len(p.medications) >= 2,
        explain=lambda s, p: (
            f"Taking {len(p.medications)} medications means we need to be careful "
            "with recommendations"
        ),
    ),
    # Advisory only: steers the recommendation away from self-care
    ScoringRule(
        rule_id="repeated_symptom",
        points=0,
        applies=lambda s, p: is_repeated_symptom(p, s.symptoms),
        explain=lambda s, p: (
            f"This has come up in {count_matching_sessions(p, s.symptoms)} earlier sessions"
        ),
    ),
)


def classify_score(score: int) -> RiskLevel:
    if score >= HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    if score >= MEDIUM_RISK_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def assess_risk(
    state: ConversationState,
    profile: ProfileContext,
    rules: tuple[ScoringRule, ...] = SCORING_RULES,
) -> RiskAssessment:
    """Score collected answers plus profile into a graduated risk level."""
    firings: list[RuleFiring] = []
    score = 0
    for rule in rules:
        if rule.applies(state, profile):
            score += rule.points
            firings.append(
                RuleFiring(
                    rule_id=rule.rule_id,
                    explanation=rule.explain(state, profile),
                    points=rule.points,
                )
            )

    assessment = RiskAssessment(level=classify_score(score), score=score, reasoning=tuple(firings))
    logger.info(
        "risk_assessed",
        level=assessment.level.value,
        score=score,
        fired_rules=assessment.fired_rule_ids,
    )
    return assessment


@dataclass(frozen=True)
class RecommendationRow:
    """One row of the decision table. ``None`` in a match column means "any"."""

    row_id: str
    risk_level: RiskLevel
    elder: bool | None
    has_conditions: bool | None
    care_type: str
    care_method: CareMethod
    urgency: str
    explain: Callable[[ProfileContext], str]

    def matches(self, risk_level: RiskLevel, profile: ProfileContext) -> bool:
        if risk_level != self.risk_level:
            return False
        if self.elder is not None and profile.is_elder != self.elder:
            return False
        if self.has_conditions is not None and profile.has_conditions != self.has_conditions:
            return False
        return True


def _conditions_caution(profile: ProfileContext) -> str:
    if not profile.has_conditions:
        return ""
    return f" With {join_names(profile.conditions)}, it's better to be cautious."


RECOMMENDATION_TABLE: tuple[RecommendationRow, ...] = (
    RecommendationRow(
        row_id="high_elder",
        risk_level=RiskLevel.HIGH,
        elder=True,
        has_conditions=None,
        care_type="Home visit",
        care_method=CareMethod.HOME_VISIT,
        urgency="within 6 hours",
        explain=lambda p: (
            f"Given {possessive(p)} age ({p.age}) and the severity of symptoms, a provider "
            f"should evaluate {subject(p)} in person at home. This is the safest option."
            + _conditions_caution(p)
        ),
    ),
    RecommendationRow(
        row_id="high",
        risk_level=RiskLevel.HIGH,
        elder=False,
        has_conditions=None,
        care_type="Video or in-person visit",
        care_method=CareMethod.VIDEO,
        urgency="within 12 hours",
        explain=lambda p: (
            f"The symptoms {subject(p)} described need professional evaluation soon. "
            "A video call can assess this, but in-person care might be needed."
            + _conditions_caution(p)
        ),
    ),
    RecommendationRow(
        row_id="medium_elder",
        risk_level=RiskLevel.MEDIUM,
        elder=True,
        has_conditions=None,
        care_type="Home visit",
        care_method=CareMethod.HOME_VISIT,
        urgency="within 24 hours",
        explain=lambda p: (
            f"Because {subject_is(p)} {p.age}, I recommend a home visit for thorough evaluation."
            + _conditions_caution(p)
        ),
    ),
    RecommendationRow(
        row_id="medium_conditions",
        risk_level=RiskLevel.MEDIUM,
        elder=False,
        has_conditions=True,
        care_type="Video consultation",
        care_method=CareMethod.VIDEO,
        urgency="within 24 hours",
        explain=lambda p: (
            f"Given {possessive(p)} {join_names(p.conditions)}, a provider should review "
            "these symptoms to adjust care if needed."
        ),
    ),
    RecommendationRow(
        row_id="medium",
        risk_level=RiskLevel.MEDIUM,
        elder=False,
        has_conditions=False,
        care_type="Video consultation",
        care_method=CareMethod.VIDEO,
        urgency="within 24-48 hours",
        explain=lambda p: (
            "These symptoms warrant professional review to rule out anything that needs treatment."
        ),
    ),
    RecommendationRow(
        row_id="low",
        risk_level=RiskLevel.LOW,
        elder=None,
        has_conditions=None,
        care_type="Self-care with monitoring",
        care_method=CareMethod.SELF_CARE,
        urgency="monitor 48 hours",
        explain=lambda p: (
            f"These symptoms appear manageable at home for now. I'll help {subject(p)} "
            "monitor them, and we can escalate if things change."
        ),
    ),
)

# Replaces a self-care row when the same complaint keeps coming back
REPEATED_SYMPTOM_ROW = RecommendationRow(
    row_id="repeated_symptom",
    risk_level=RiskLevel.LOW,
    elder=None,
    has_conditions=None,
    care_type="Video consultation",
    care_method=CareMethod.VIDEO,
    urgency="within 24-48 hours",
    explain=lambda p: (
        "This issue has come up multiple times. "
        "I don't recommend managing this with self-care anymore."
    ),
)

REFUSAL_RISKS: dict[CareMethod, str] = {
    CareMethod.VIDEO: "waiting may allow symptoms to worsen",
    CareMethod.HOME_VISIT: "delaying in-person assessment could miss important signs",
    CareMethod.EMERGENCY: "this could be life-threatening",
}


def describe_profile_factors(
    profile: ProfileContext, state: ConversationState | None = None
) -> tuple[str, ...]:
    """The profile and answer facts a recommendation was based on."""
    factors: list[str] = []
    if profile.age is not None:
        factors.append(f"Age: {profile.age}")
    if profile.has_conditions:
        factors.append(f"Conditions: {', '.join(profile.conditions)}")
    else:
        factors.append("Conditions: none on file")
    if profile.medications:
        factors.append(f"Medications: {', '.join(profile.medications)}")
    if state is not None and state.severity is not None:
        factors.append(f"Severity: {state.severity}/10")
    return tuple(factors)


def generate_recommendation(
    assessment: RiskAssessment,
    profile: ProfileContext,
    state: ConversationState | None = None,
    table: tuple[RecommendationRow, ...] = RECOMMENDATION_TABLE,
) -> Recommendation:
    """
    Pick the care type and urgency for a risk level and profile.

    When ``state`` is given and its complaint repeats across past sessions, a
    self-care row is replaced by a consultation.
    """
    row = next((r for r in table if r.matches(assessment.level, profile)), None)
    if row is None:
        raise ValueError(f"No recommendation row for risk level {assessment.level.value}")
    if (
        row.care_method == CareMethod.SELF_CARE
        and state is not None
        and is_repeated_symptom(profile, state.symptoms)
    ):
        row = REPEATED_SYMPTOM_ROW

    factors = describe_profile_factors(profile, state)
    reasoning = f"{row.explain(profile)} This takes into account {'; '.join(factors)}."

    follow_up = None
    if row.care_method != CareMethod.SELF_CARE:
        follow_up = (
            f"I'll check in with {subject(profile)} tomorrow to see how things are progressing."
        )

    logger.info("recommendation_generated", row_id=row.row_id, care_method=row.care_method.value)
    return Recommendation(
        risk_level=assessment.level,
        care_type=row.care_type,
        care_method=row.care_method,
        urgency=row.urgency,
        reasoning=reasoning,
        follow_up=follow_up,
        factors=factors,
    )


def build_recommendation_message(
    recommendation: Recommendation,
    assessment: RiskAssessment,
    tone: Tone | None = None,
) -> Message:
    """Transcript entry presenting the recommendation and the rules behind it."""
    content = (
        f"**My Recommendation: {recommendation.care_type}**\n\n"
        f"{recommendation.reasoning}\n\n"
        f"**Timeline:** {recommendation.urgency}"
    )
    if recommendation.follow_up:
        content += f"\n\n{recommendation.follow_up}"

    why = "; ".join(assessment.explanations) or "No risk factors fired"
    return Message(
        type=MessageType.CAREBOW,
        content=content,
        reasoning=f"Risk level: {assessment.level.value} (score {assessment.score}). {why}.",
        profile_insight=f"Recommendation factors: {', '.join(recommendation.factors)}",
        tone=tone,
    )


def build_refusal_message(care_method: CareMethod) -> Message:
    """
    Respect a declined recommendation while naming the risk of waiting.

    Raises:
        ValueError: ``care_method`` is self-care, which has nothing to decline.
    """
    risk = REFUSAL_RISKS.get(care_method)
    if risk is None:
        raise ValueError(f"Nothing to decline for {care_method.value}")

    return Message(
        type=MessageType.CAREBOW,
        content=(
            "That's your choice. I want you to know waiting carries some risk "
            f"because {risk}. If anything changes, you can book a consult at any time."
        ),
        reasoning=f"Recommendation declined: {care_method.value}",
        tone=Tone.URGENT if care_method == CareMethod.EMERGENCY else Tone.CAUTIOUS,
    )
