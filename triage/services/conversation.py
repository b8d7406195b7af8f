"""
Conversation state machine for the five-step triage intake.

Key decisions:
- ``advance`` is a pure step-transition function: it takes a state, a profile and
  one utterance and returns the next state plus the messages that turn produced.
  It never mutates its inputs.
- The emergency screen runs on every raw utterance before anything else and is
  terminal once it fires.
- ``TriageSession`` is the only mutable object. It owns one profile, one state and
  the append-only transcript, and it is never shared across sessions.
"""

import re

import structlog

from triage.config import emergency_number
from triage.domain.models import (
    CareMethod,
    ConversationPhase,
    ConversationState,
    Message,
    MessageType,
    PersonalizationRules,
    ProfileContext,
    TriageOutcome,
)
from triage.services.cta import get_cta_config, triage_for_state
from triage.services.personalization import (
    RED_FLAG_CHECKLIST,
    build_missing_data_advisory,
    build_opening_message,
    build_privacy_message,
    build_question,
    find_past_session_reference,
    get_personalization_rules,
)
from triage.services.risk import (
    assess_risk,
    build_recommendation_message,
    build_refusal_message,
    generate_recommendation,
)
from triage.services.safety import (
    EmergencyScreen,
    MedicationSafetyResult,
    build_safety_message,
    check_medication_safety,
    normalize_text,
)

logger = structlog.get_logger(__name__)

DEFAULT_SEVERITY = 5
GENERIC_RED_FLAG = "Warning signs present"

# Checked in order; the first bucket named in the reply wins
SEVERITY_BUCKETS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("1-3", "mild"), 2),
    (("4-6", "moderate"), 5),
    (("7-10", "severe"), 8),
)

# Phrases that identify a checklist item inside a "yes" reply
RED_FLAG_MARKERS: dict[str, tuple[str, ...]] = {
    "Fever over 102°F": ("fever", "102"),
    "Difficulty breathing": ("breath",),
    "Severe pain": ("severe pain", "bad pain", "intense pain", "worst pain", "unbearable"),
    "Confusion or dizziness": ("confus", "dizz"),
    "Unable to keep food/water down": ("food", "water", "vomit", "keep anything down"),
}

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

_NEXT_PHASE: dict[int, ConversationPhase] = {
    1: ConversationPhase.STEP_1_DURATION,
    2: ConversationPhase.STEP_2_SEVERITY,
    3: ConversationPhase.STEP_3_RED_FLAGS,
    4: ConversationPhase.STEP_4_ASSESS,
}


class ConversationClosedError(RuntimeError):
    """A turn was submitted after the conversation reached a terminal phase."""


class ProfileMismatchError(ValueError):
    """The profile passed to the engine is not the one the state belongs to."""


def parse_severity(text: str) -> int:
    """
    Read a 1-10 severity rating from free text.

    Categorical buckets win over numbers; a leading integer is clamped into range.
    Anything unreadable (including spelled-out numbers) becomes 5.
    """
    lowered = text.lower()
    for markers, value in SEVERITY_BUCKETS:
        if any(marker in lowered for marker in markers):
            return value

    match = _LEADING_INT.match(text)
    if match is None:
        return DEFAULT_SEVERITY
    return max(1, min(10, int(match.group(1))))


def parse_red_flags(text: str) -> tuple[str, ...]:
    """Red flag labels for a checklist reply; empty unless the reply says "yes"."""
    lowered = normalize_text(text)
    if "yes" not in lowered:
        return ()

    named = tuple(
        label
        for label in RED_FLAG_CHECKLIST
        if any(marker in lowered for marker in RED_FLAG_MARKERS.get(label, ()))
    )
    return named or (GENERIC_RED_FLAG,)


def start_conversation(
    profile: ProfileContext,
    *,
    rules: PersonalizationRules | None = None,
    privacy_notice: bool = False,
) -> tuple[ConversationState, list[Message]]:
    """
    Initial state plus the opening message.

    A missing-data advisory follows when the profile lacks safety-relevant data, and
    the privacy notice when ``privacy_notice`` is set.
    """
    rules = rules or get_personalization_rules(profile)
    state = ConversationState(profile_id=profile.id)

    messages = [build_opening_message(profile, rules)]
    advisory = build_missing_data_advisory(profile)
    if advisory is not None:
        messages.append(advisory)
    if privacy_notice:
        messages.append(build_privacy_message())

    logger.info("conversation_started", tone=rules.tone.value)
    return state, messages


def _record_answer(state: ConversationState, utterance: str) -> dict[str, object]:
    """Field updates for the answer to the current step."""
    answers = {**state.answers, state.step: utterance}
    if state.step == 0:
        return {"symptoms": (utterance,), "answers": answers}
    if state.step == 1:
        return {"duration": utterance, "answers": answers}
    if state.step == 2:
        return {"severity": parse_severity(utterance), "answers": answers}
    if state.step == 3:
        return {"red_flags": parse_red_flags(utterance), "answers": answers}
    raise ConversationClosedError(f"No answer is expected at step {state.step}")


def advance(
    state: ConversationState,
    profile: ProfileContext,
    utterance: str,
    *,
    screen: EmergencyScreen | None = None,
) -> tuple[ConversationState, list[Message]]:
    """
    Apply one user utterance to the conversation.

    Returns the new state and the engine messages for this turn: exactly one for
    an accepted turn, none for a blank utterance.

    Raises:
        ConversationClosedError: the state is already terminal.
        ProfileMismatchError: ``profile`` is not the profile ``state`` belongs to.
    """
    if state.is_terminal:
        raise ConversationClosedError(f"Conversation already ended in {state.phase.value}")
    if profile.id != state.profile_id:
        raise ProfileMismatchError(
            f"State belongs to profile {state.profile_id}, got {profile.id}"
        )

    text = utterance.strip()
    if not text:
        return state, []

    screen = screen or EmergencyScreen(emergency_number=emergency_number())
    result = screen.screen(text)
    if result.is_emergency:
        new_state = ConversationState.model_validate(
            {
                **state.model_dump(),
                "phase": ConversationPhase.EMERGENCY_EXIT,
                "is_emergency": True,
                "is_crisis": result.is_crisis,
            }
        )
        logger.warning("conversation_emergency_exit", step=state.step, crisis=result.is_crisis)
        return new_state, [screen.build_message(result)]

    updates = _record_answer(state, text)
    step = state.step + 1
    phase = _NEXT_PHASE[step]
    new_state = ConversationState.model_validate(
        {**state.model_dump(), **updates, "step": step, "phase": phase}
    )
    logger.info("turn_accepted", step=step, phase=phase.value)

    rules = get_personalization_rules(profile)
    if phase == ConversationPhase.STEP_4_ASSESS:
        assessment = assess_risk(new_state, profile)
        recommendation = generate_recommendation(assessment, profile, new_state)
        return new_state, [build_recommendation_message(recommendation, assessment, rules.tone)]

    insight = None
    if phase == ConversationPhase.STEP_1_DURATION and rules.should_refer_past:
        insight = find_past_session_reference(profile, new_state.symptoms)
    return new_state, [build_question(phase, profile, rules, profile_insight=insight)]


class TriageSession:
    """
    One triage session: a profile, its conversation state and the transcript.

    Switching profile discards the in-progress conversation; answers given for one
    person are never carried over to another.
    """

    def __init__(
        self,
        profile: ProfileContext,
        *,
        screen: EmergencyScreen | None = None,
        privacy_notice: bool = False,
    ) -> None:
        self.screen = screen or EmergencyScreen(emergency_number=emergency_number())
        self.privacy_notice = privacy_notice
        self.transcript: list[Message] = []
        self.logger = logger.bind(component="triage_session")
        self._begin(profile)

    def _begin(self, profile: ProfileContext) -> None:
        self.profile = profile
        self.state, opening = start_conversation(profile, privacy_notice=self.privacy_notice)
        self.transcript.extend(opening)

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal

    def send(self, utterance: str) -> list[Message]:
        """Log the user's utterance, advance one turn and return the engine's reply."""
        self.state, replies = advance(self.state, self.profile, utterance, screen=self.screen)
        if replies:
            self.transcript.append(Message(type=MessageType.USER, content=utterance.strip()))
            self.transcript.extend(replies)
        return replies

    def switch_profile(self, profile: ProfileContext) -> list[Message]:
        """Start over for another care subject."""
        self.logger.info("profile_switched", discarded_step=self.state.step)
        start = len(self.transcript)
        self._begin(profile)
        return self.transcript[start:]

    def propose_treatment(self, candidate: str) -> MedicationSafetyResult:
        """Check a candidate treatment against the profile and log the verdict."""
        result = check_medication_safety(self.profile, candidate)
        self.transcript.append(build_safety_message(self.profile, candidate, result))
        return result

    def decline_recommendation(self) -> Message:
        """
        Record that the user declined the recommended care and state what that risks.

        Raises:
            RuntimeError: the conversation has not finished yet.
            ValueError: the recommendation was self-care, so there is nothing to decline.
        """
        if self.state.is_emergency:
            care_method = CareMethod.EMERGENCY
        else:
            recommendation = self.outcome().recommendation
            assert recommendation is not None
            care_method = recommendation.care_method

        message = build_refusal_message(care_method)
        self.transcript.append(message)
        self.logger.info("recommendation_declined", care_method=care_method.value)
        return message

    def outcome(self) -> TriageOutcome:
        """
        The triage result of a finished conversation.

        Emergency exits carry no assessment or recommendation.

        Raises:
            RuntimeError: the conversation has not finished yet.
        """
        if not self.state.is_terminal:
            raise RuntimeError(f"Conversation still in progress at {self.state.phase.value}")

        assessment = None
        recommendation = None
        if not self.state.is_emergency:
            assessment = assess_risk(self.state, self.profile)
            recommendation = generate_recommendation(assessment, self.profile, self.state)

        level = triage_for_state(self.state, assessment, recommendation)
        return TriageOutcome(
            state=self.state,
            assessment=assessment,
            recommendation=recommendation,
            triage_level=level,
            cta=get_cta_config(level),
        )
