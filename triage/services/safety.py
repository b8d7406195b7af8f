"""
Safety checks that run outside the normal question flow.

- Emergency screen: keyword interrupt applied to every raw utterance before any
  other processing. Best-effort heuristic only: substring matching has false
  positives ("I had chest pain last year") and misses anything not in the table.
  Mental-health crisis language is a second table screened alongside it.
- Medication/allergy checker: interaction lookup applied when a specific
  treatment is about to be proposed. Open-world: unmatched combinations are safe.

Both knowledge bases are plain rule tables keyed by rule id, so they can grow
without touching control flow.
"""

from collections.abc import Mapping
from typing import Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field

from triage.config import DEFAULT_EMERGENCY_NUMBER
from triage.domain.models import Message, MessageType, ProfileContext, Tone

logger = structlog.get_logger(__name__)


def normalize_text(text: str) -> str:
    """Lowercase and fold typographic apostrophes so "can’t" matches "can't"."""
    return text.lower().replace("’", "'").replace("‘", "'")


class EmergencyRule(BaseModel):
    """One emergency condition and the phrases that indicate it."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    keywords: tuple[str, ...] = Field(min_length=1)

    def matches(self, normalized: str) -> bool:
        return any(keyword in normalized for keyword in self.keywords)


EMERGENCY_RULES: dict[str, EmergencyRule] = {
    rule.rule_id: rule
    for rule in (
        EmergencyRule(rule_id="chest_pain", keywords=("chest pain",)),
        EmergencyRule(rule_id="breathing", keywords=("can't breathe", "difficulty breathing")),
        EmergencyRule(rule_id="severe_bleeding", keywords=("severe bleeding",)),
        EmergencyRule(rule_id="unconscious", keywords=("unconscious",)),
        EmergencyRule(rule_id="stroke", keywords=("stroke",)),
        EmergencyRule(rule_id="heart_attack", keywords=("heart attack",)),
        EmergencyRule(rule_id="suicide", keywords=("suicide",)),
        EmergencyRule(rule_id="overdose", keywords=("overdose",)),
        EmergencyRule(rule_id="severe_pain", keywords=("severe pain",)),
        EmergencyRule(rule_id="confusion", keywords=("confused",)),
        EmergencyRule(rule_id="immobility", keywords=("can't move",)),
        EmergencyRule(rule_id="vision_loss", keywords=("vision loss",)),
        EmergencyRule(rule_id="slurred_speech", keywords=("slurred speech",)),
    )
}


# Mental-health crisis language. Also terminal, but answered with a supportive
# message instead of the ER template.
CRISIS_RULES: dict[str, EmergencyRule] = {
    rule.rule_id: rule
    for rule in (
        EmergencyRule(
            rule_id="suicidal_ideation",
            keywords=("suicide", "kill myself", "end my life", "want to die"),
        ),
        EmergencyRule(rule_id="hopelessness", keywords=("hopeless", "no point", "can't go on")),
        EmergencyRule(rule_id="panic", keywords=("severe panic", "panic attack", "can't cope")),
        EmergencyRule(rule_id="self_harm", keywords=("self harm", "self-harm", "hurt myself")),
    )
}

CRISIS_ACTIONS: tuple[str, ...] = ("Talk to a professional", "Call support", "Reach crisis help")


class EmergencyScreenResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_emergency: bool
    matched_rules: tuple[str, ...] = ()
    crisis_rules: tuple[str, ...] = ()

    @property
    def is_crisis(self) -> bool:
        return len(self.crisis_rules) > 0


class EmergencyScreen:
    """Keyword-based emergency and crisis interrupt."""

    def __init__(
        self,
        rules: Mapping[str, EmergencyRule] | None = None,
        emergency_number: str = DEFAULT_EMERGENCY_NUMBER,
        crisis_rules: Mapping[str, EmergencyRule] | None = None,
    ) -> None:
        self.rules = dict(EMERGENCY_RULES if rules is None else rules)
        self.crisis_rules = dict(CRISIS_RULES if crisis_rules is None else crisis_rules)
        self.emergency_number = emergency_number
        self.logger = logger.bind(component="emergency_screen")

    def screen(self, text: str) -> EmergencyScreenResult:
        normalized = normalize_text(text)
        matched = tuple(rule_id for rule_id, rule in self.rules.items() if rule.matches(normalized))
        crisis = tuple(
            rule_id for rule_id, rule in self.crisis_rules.items() if rule.matches(normalized)
        )
        if crisis:
            self.logger.warning("crisis_detected", matched_rules=list(crisis))
        if matched:
            self.logger.warning("emergency_detected", matched_rules=list(matched))
        return EmergencyScreenResult(
            is_emergency=bool(matched or crisis), matched_rules=matched, crisis_rules=crisis
        )

    def build_message(self, result: EmergencyScreenResult | None = None) -> Message:
        """The fixed emergency template, or the crisis message when crisis language matched."""
        if result is not None and result.is_crisis:
            return self.build_crisis_message()
        return Message(
            type=MessageType.EMERGENCY,
            content=(
                "Based on what you've shared, this could be serious. "
                "Please seek emergency care now.\n\n"
                f"Call {self.emergency_number} or go to the nearest emergency room immediately.\n\n"
                "I'll be here when you're ready, but your immediate safety is the priority."
            ),
            reasoning="Emergency symptoms detected - immediate medical attention required",
            tone=Tone.URGENT,
        )

    def build_crisis_message(self) -> Message:
        actions = "\n".join(f"• {action}" for action in CRISIS_ACTIONS)
        return Message(
            type=MessageType.EMERGENCY,
            content=(
                "I'm really glad you reached out. You don't have to handle this alone.\n\n"
                f"{actions}\n\n"
                f"If you might act on these thoughts, call {self.emergency_number} now "
                "or go to the nearest emergency room."
            ),
            reasoning="Crisis language detected - connecting to support comes first",
            tone=Tone.REASSURING,
        )


def detect_emergency(text: str) -> bool:
    """Screen text against the default emergency table."""
    return EmergencyScreen().screen(text).is_emergency


class InteractionRule(BaseModel):
    """A profile fact that makes some proposed treatments unsafe."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    profile_field: Literal["allergies", "medications"]
    profile_marker: str
    proposal_markers: tuple[str, ...] = Field(min_length=1)
    reason: str = Field(description="Template; {name} is the care subject's name")
    alternatives: tuple[str, ...] = ()

    def applies(self, profile: ProfileContext, proposed: str) -> bool:
        entries = getattr(profile, self.profile_field)
        if not any(self.profile_marker in normalize_text(entry) for entry in entries):
            return False
        normalized = normalize_text(proposed)
        return any(marker in normalized for marker in self.proposal_markers)


# Allergy rules precede medication rules; the first applicable rule wins
INTERACTION_RULES: dict[str, InteractionRule] = {
    rule.rule_id: rule
    for rule in (
        InteractionRule(
            rule_id="penicillin_allergy",
            profile_field="allergies",
            profile_marker="penicillin",
            proposal_markers=("penicillin", "amoxicillin", "ampicillin"),
            reason="{name} has a documented Penicillin allergy",
            alternatives=("Azithromycin", "Cephalexin (if no severe penicillin allergy)"),
        ),
        InteractionRule(
            rule_id="shellfish_iodine",
            profile_field="allergies",
            profile_marker="shellfish",
            proposal_markers=("iodine",),
            reason="{name}'s shellfish allergy may indicate iodine sensitivity",
            alternatives=("Non-iodine based alternatives",),
        ),
        InteractionRule(
            rule_id="warfarin_aspirin",
            profile_field="medications",
            profile_marker="warfarin",
            proposal_markers=("aspirin",),
            reason="Aspirin can interact with {name}'s Warfarin and increase bleeding risk",
            alternatives=("Acetaminophen",),
        ),
        InteractionRule(
            rule_id="metformin_alcohol",
            profile_field="medications",
            profile_marker="metformin",
            proposal_markers=("alcohol",),
            reason="Alcohol can interact dangerously with {name}'s Metformin",
            alternatives=("Avoid alcohol-based treatments",),
        ),
    )
}


class MedicationSafetyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    safe: bool
    rule_id: str | None = None
    reason: str | None = None
    alternatives: tuple[str, ...] = ()


def check_medication_safety(
    profile: ProfileContext,
    proposed: str,
    rules: Mapping[str, InteractionRule] | None = None,
) -> MedicationSafetyResult:
    """
    Check a proposed treatment against the profile's allergies and medications.

    Only combinations in the interaction table are caught; everything else is
    reported safe. An empty profile is never a reason to block.
    """
    table = INTERACTION_RULES if rules is None else rules
    for rule in table.values():
        if rule.applies(profile, proposed):
            logger.info("treatment_blocked", rule_id=rule.rule_id)
            return MedicationSafetyResult(
                safe=False,
                rule_id=rule.rule_id,
                reason=rule.reason.format(name=profile.name),
                alternatives=rule.alternatives,
            )
    return MedicationSafetyResult(safe=True)


def build_safety_message(
    profile: ProfileContext, proposed: str, result: MedicationSafetyResult
) -> Message:
    """Transcript entry explaining a medication safety verdict."""
    if result.safe:
        content = (
            f"{proposed} doesn't conflict with anything I know about {profile.name}'s "
            "allergies or medications."
        )
        if not profile.medications and not profile.allergies:
            content += (
                " I don't have any medications or allergies on file, so check with a provider."
            )
        return Message(
            type=MessageType.SYSTEM,
            content=content,
            reasoning="No known interaction in the safety table",
        )

    alternatives = ", ".join(result.alternatives) if result.alternatives else "a provider's advice"
    return Message(
        type=MessageType.SYSTEM,
        content=(
            f"I can't recommend {proposed}. {result.reason}. "
            f"Safer options to discuss: {alternatives}."
        ),
        reasoning=f"Blocked by interaction rule {result.rule_id}",
        tone=Tone.CAUTIOUS,
    )
