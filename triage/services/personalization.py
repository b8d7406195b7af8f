"""
Profile-driven personalization for the triage conversation.

Two concerns live here:
- ``get_personalization_rules``: a pure mapping from a profile to behavioral
  modifiers that the scorer and the question phrasing consult.
- Phrasing helpers that cite the profile verbatim (named conditions, medications,
  age) so the user can see why the engine asks what it asks.

Age-based rules only fire when the age is known.
"""

import structlog

from triage.domain.models import (
    CareMethod,
    ConversationPhase,
    Message,
    MessageType,
    PastSession,
    PersonalizationRules,
    ProfileContext,
    RiskTolerance,
    Tone,
)

logger = structlog.get_logger(__name__)

ELDER_MULTIPLIER = 1.3
CHILD_MULTIPLIER = 1.2
CHRONIC_MULTIPLIER = 1.2

# Past sessions with the same complaint before self-care is no longer offered
REPEATED_SYMPTOM_THRESHOLD = 3

PRIVACY_NOTICE = (
    "Your health data is used only to personalize care. "
    "It is never sold or shared without consent."
)

RED_FLAG_CHECKLIST: tuple[str, ...] = (
    "Fever over 102°F",
    "Difficulty breathing",
    "Severe pain",
    "Confusion or dizziness",
    "Unable to keep food/water down",
)


def get_personalization_rules(profile: ProfileContext) -> PersonalizationRules:
    """Derive behavioral modifiers from a profile. Pure: same profile, same rules."""
    has_conditions = profile.has_conditions
    is_elder = profile.is_elder
    is_child = profile.is_child

    if has_conditions or is_child or is_elder:
        risk_tolerance = RiskTolerance.LOW
    else:
        risk_tolerance = RiskTolerance.MEDIUM

    preferred_care_method = CareMethod.HOME_VISIT if is_elder else CareMethod.VIDEO

    urgency_multiplier = 1.0
    if is_elder:
        urgency_multiplier *= ELDER_MULTIPLIER
    if is_child:
        urgency_multiplier *= CHILD_MULTIPLIER
    if has_conditions:
        urgency_multiplier *= CHRONIC_MULTIPLIER

    tone = Tone.CAUTIOUS if (has_conditions or is_elder) else Tone.REASSURING

    return PersonalizationRules(
        risk_tolerance=risk_tolerance,
        preferred_care_method=preferred_care_method,
        urgency_multiplier=urgency_multiplier,
        tone=tone,
        should_check_medications=len(profile.medications) > 0,
        should_refer_past=len(profile.past_sessions) > 0,
    )


# Wording helpers


def subject(profile: ProfileContext) -> str:
    return "you" if profile.is_self else profile.name


def possessive(profile: ProfileContext) -> str:
    return "your" if profile.is_self else f"{profile.name}'s"


def subject_is(profile: ProfileContext) -> str:
    return "you're" if profile.is_self else f"{profile.name} is"


def join_names(items: tuple[str, ...] | list[str]) -> str:
    return " and ".join(items)


def build_opening_message(
    profile: ProfileContext, rules: PersonalizationRules | None = None
) -> Message:
    """Personalized greeting that cites what the engine knows about the care subject."""
    rules = rules or get_personalization_rules(profile)
    content = f"I'm here to help with {possessive(profile)} care. "
    insight: list[str] = []

    if profile.has_conditions:
        has = "you have" if profile.is_self else f"{profile.name} has"
        content += (
            f"I see {has} {join_names(profile.conditions)}. "
            "I'll be extra careful because of this. "
        )
        insight.append(f"Known conditions: {', '.join(profile.conditions)}.")

    if rules.should_check_medications:
        content += (
            f"I also see {possessive(profile)} current medications "
            f"({', '.join(profile.medications)}), so I'll make sure any recommendations are safe. "
        )
        insight.append(f"Taking {len(profile.medications)} medication(s).")

    if profile.is_elder:
        content += (
            f"Since {subject_is(profile)} {profile.age}, I'll use a lower threshold "
            "for recommending professional care. "
        )
        insight.append(f"Age {profile.age} = increased caution.")
    elif profile.is_child:
        content += (
            f"Since this is about a {profile.age}-year-old, "
            "I'll be especially careful with my assessment. "
        )
        insight.append(f"Pediatric case (age {profile.age}).")

    content += f"\n\nNow, what's going on? Tell me what {subject_is(profile)} experiencing."

    return Message(
        type=MessageType.CAREBOW,
        content=content,
        reasoning="Establishing personalized context before symptom gathering",
        profile_insight=" ".join(insight) or None,
        tone=rules.tone,
    )


def build_missing_data_advisory(profile: ProfileContext) -> Message | None:
    """Advisory for absent safety-relevant profile data. Does not change any rule."""
    missing: list[str] = []
    if not profile.medications:
        missing.append("medications")
    if not profile.allergies:
        missing.append("allergies")
    if not profile.blood_group:
        missing.append("blood group")

    if not missing:
        return None

    if len(missing) == 1:
        listed = missing[0]
    else:
        listed = f"{', '.join(missing[:-1])} and {missing[-1]}"

    logger.info("profile_data_missing", fields=missing)
    return Message(
        type=MessageType.SYSTEM,
        content=(
            f"I notice {possessive(profile)} profile is missing {listed}. "
            "This doesn't stop us from continuing, but adding this information helps me keep "
            f"{subject(profile)} safe from drug interactions or allergic reactions."
        ),
        reasoning="Missing profile data reduces the safety checks I can run",
    )


def find_past_session_reference(
    profile: ProfileContext, symptoms: tuple[str, ...] | list[str]
) -> str | None:
    """Describe the first past session whose symptoms overlap the current ones."""
    if not profile.past_sessions or not symptoms:
        return None

    current = [s.lower() for s in symptoms]
    for session in profile.past_sessions:
        if _overlaps(session, current):
            who = "you" if profile.is_self else profile.name
            return (
                f"I notice {who} had {join_names(session.symptoms)} {session.date}. "
                f"{session.outcome}. {session.resolution}. "
                "I'll keep this in mind as we assess what's happening now."
            )
    return None


def _overlaps(session: PastSession, current: list[str]) -> bool:
    for past in (s.lower() for s in session.symptoms):
        if any(past in c or c in past for c in current):
            return True
    return False


def count_matching_sessions(
    profile: ProfileContext, symptoms: tuple[str, ...] | list[str]
) -> int:
    current = [s.lower() for s in symptoms]
    if not current:
        return 0
    return sum(1 for session in profile.past_sessions if _overlaps(session, current))


def is_repeated_symptom(profile: ProfileContext, symptoms: tuple[str, ...] | list[str]) -> bool:
    """True once the same complaint has come up in enough past sessions to rule out self-care."""
    return count_matching_sessions(profile, symptoms) >= REPEATED_SYMPTOM_THRESHOLD


def build_privacy_message() -> Message:
    return Message(type=MessageType.SYSTEM, content=PRIVACY_NOTICE)


def build_question(
    phase: ConversationPhase,
    profile: ProfileContext,
    rules: PersonalizationRules,
    profile_insight: str | None = None,
) -> Message:
    """Question for an intake phase, with the reason for asking it."""
    who = subject(profile)

    if phase == ConversationPhase.STEP_1_DURATION:
        has_been = "have you" if profile.is_self else f"has {profile.name}"
        content = f"How long {has_been} been experiencing this?"
        reasoning = (
            "I'm asking because the duration helps me understand if this is acute "
            "or if it's been building over time."
        )

    elif phase == ConversationPhase.STEP_2_SEVERITY:
        if profile.is_child:
            content = (
                f"How much is this bothering {who}? You can use a number 1-10, "
                'where 1 is "barely noticeable" and 10 is "really bad."'
            )
        else:
            content = (
                "On a scale of 1-10, how severe is this? "
                "(1 = barely noticeable, 10 = worst imaginable)"
            )
        reasoning = "This helps me gauge urgency"
        if profile.has_conditions:
            reasoning += (
                f" and, because of {possessive(profile)} {join_names(profile.conditions)}, "
                "I need to be more cautious with moderate-to-severe symptoms"
            )
        reasoning += "."

    elif phase == ConversationPhase.STEP_3_RED_FLAGS:
        experiencing = "Are you" if profile.is_self else f"Is {profile.name}"
        checklist = "\n".join(f"• {item}" for item in RED_FLAG_CHECKLIST)
        content = f"{experiencing} experiencing any of these:\n{checklist}\n\nAnswer yes or no."
        reasoning = "I'm checking for warning signs that would change my recommendation."

    else:
        raise ValueError(f"No question is asked in phase {phase.value}")

    return Message(
        type=MessageType.CAREBOW,
        content=content,
        reasoning=reasoning,
        profile_insight=profile_insight,
        tone=rules.tone,
    )
