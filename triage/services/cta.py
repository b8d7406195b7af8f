"""
Triage-to-CTA mapping.

Reduces an outcome to one of four triage levels, then to the fixed set of actions
the UI presents. Both steps are total and side-effect free; acting on an action id
belongs to the dispatch adapter.
"""

from triage.domain.models import (
    ActionId,
    CareMethod,
    ConversationState,
    CTAAction,
    CTAConfig,
    CTAVariant,
    Recommendation,
    RiskAssessment,
    RiskLevel,
    TriageLevel,
)

DEFAULT_SEVERITY = 5

TERTIARY_ACTION = CTAAction(label="Save / Share Summary", action_id=ActionId.SAVE_SHARE)

CTA_CONFIGS: dict[TriageLevel, CTAConfig] = {
    TriageLevel.EMERGENCY: CTAConfig(
        primary=CTAAction(
            label="Get urgent help now",
            action_id=ActionId.EMERGENCY_CALL,
            variant=CTAVariant.EMERGENCY,
        ),
        secondary=CTAAction(label="Find nearest ER", action_id=ActionId.FIND_ER),
        hint="Do not delay seeking care",
        tertiary=TERTIARY_ACTION,
    ),
    TriageLevel.URGENT: CTAConfig(
        primary=CTAAction(
            label="Talk to a doctor today",
            action_id=ActionId.CONNECT_DOCTOR,
            variant=CTAVariant.URGENT,
        ),
        secondary=CTAAction(label="Book home visit", action_id=ActionId.BOOK_HOME_VISIT),
        hint="Same-day consultations available",
        tertiary=TERTIARY_ACTION,
    ),
    TriageLevel.SOON: CTAConfig(
        primary=CTAAction(
            label="Schedule teleconsult",
            action_id=ActionId.SCHEDULE_TELECONSULT,
            variant=CTAVariant.PRIMARY,
        ),
        secondary=CTAAction(label="Home visit options", action_id=ActionId.HOME_VISIT_OPTIONS),
        hint="Book at your convenience",
        tertiary=TERTIARY_ACTION,
    ),
    TriageLevel.SELF_CARE: CTAConfig(
        primary=CTAAction(
            label="Set check-in reminder",
            action_id=ActionId.SET_REMINDER,
            variant=CTAVariant.DEFAULT,
        ),
        secondary=CTAAction(label="Home remedies checklist", action_id=ActionId.HOME_REMEDIES),
        hint="Monitor and follow up if needed",
        tertiary=TERTIARY_ACTION,
    ),
}


def _value(item: str | CareMethod | RiskLevel | None) -> str | None:
    if item is None:
        return None
    return item.value if isinstance(item, CareMethod | RiskLevel) else item


def get_triage_level(
    *,
    recommendation: str | CareMethod | None = None,
    risk_level: str | RiskLevel | None = None,
    has_red_flags: bool = False,
    severity: int | None = None,
) -> TriageLevel:
    """
    Map assessment data to a triage level. Rules apply in strict precedence order:

    1. emergency recommendation, or red flags with severity >= 8
    2. high risk, or video recommendation with severity >= 7
    3. medium risk, or video recommendation
    4. anything else
    """
    rec = _value(recommendation)
    risk = _value(risk_level)
    sev = DEFAULT_SEVERITY if severity is None else severity

    if rec == CareMethod.EMERGENCY.value or (has_red_flags and sev >= 8):
        return TriageLevel.EMERGENCY
    if risk == RiskLevel.HIGH.value or (rec == CareMethod.VIDEO.value and sev >= 7):
        return TriageLevel.URGENT
    if risk == RiskLevel.MEDIUM.value or rec == CareMethod.VIDEO.value:
        return TriageLevel.SOON
    return TriageLevel.SELF_CARE


def get_cta_config(level: TriageLevel) -> CTAConfig:
    return CTA_CONFIGS[level]


def get_tertiary_action() -> CTAAction:
    """Always available, whatever the triage level."""
    return TERTIARY_ACTION


def triage_for_state(
    state: ConversationState,
    assessment: RiskAssessment | None = None,
    recommendation: Recommendation | None = None,
) -> TriageLevel:
    """Triage level of a finished conversation; emergency exits map to emergency."""
    if state.is_emergency:
        return get_triage_level(recommendation=CareMethod.EMERGENCY)
    return get_triage_level(
        recommendation=recommendation.care_method if recommendation else None,
        risk_level=assessment.level if assessment else None,
        has_red_flags=bool(state.red_flags),
        severity=state.severity,
    )
