"""
Domain models for personalized health triage.

These models represent the core triage concepts and are framework-agnostic.
They use Pydantic for validation; values the engine treats as immutable are frozen
and evolve by copy.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _dedupe(values: object) -> object:
    """Collapse repeated entries while keeping first-seen order."""
    if isinstance(values, list | tuple | set | frozenset):
        seen: dict[str, None] = {}
        for value in values:
            seen.setdefault(value, None)
        return tuple(seen)
    return values


class Relationship(str, Enum):
    """Who the care subject is relative to the app user."""

    ME = "me"
    FATHER = "father"
    MOTHER = "mother"
    SPOUSE = "spouse"
    CHILD = "child"
    OTHER = "other"


class PastSession(BaseModel):
    """Outcome of an earlier triage conversation for the same care subject."""

    model_config = ConfigDict(frozen=True)

    date: str = Field(description="Free-text date, e.g. '2 weeks ago'")
    symptoms: tuple[str, ...] = Field(min_length=1)
    outcome: str
    resolution: str


class ProfileContext(BaseModel):
    """Identity and medical background of the care subject."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    relationship: Relationship
    age: int | None = Field(None, ge=0, le=130)

    # Set semantics with stable order, so generated text is reproducible
    conditions: tuple[str, ...] = ()
    medications: tuple[str, ...] = ()
    allergies: tuple[str, ...] = ()
    blood_group: str | None = None
    past_sessions: tuple[PastSession, ...] = ()

    @field_validator("relationship", mode="before")
    @classmethod
    def normalize_relationship(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("conditions", "allergies", mode="before")
    @classmethod
    def dedupe_sets(cls, v: object) -> object:
        return _dedupe(v)

    @property
    def is_self(self) -> bool:
        return self.relationship == Relationship.ME

    @property
    def has_conditions(self) -> bool:
        return len(self.conditions) > 0

    @property
    def is_elder(self) -> bool:
        return self.age is not None and self.age >= 60

    @property
    def is_child(self) -> bool:
        return self.age is not None and self.age < 18


class ConversationPhase(str, Enum):
    """States of the fixed five-step intake."""

    STEP_0_SYMPTOM = "step_0_symptom"
    STEP_1_DURATION = "step_1_duration"
    STEP_2_SEVERITY = "step_2_severity"
    STEP_3_RED_FLAGS = "step_3_red_flags"
    STEP_4_ASSESS = "step_4_assess"
    EMERGENCY_EXIT = "emergency_exit"

    @property
    def is_terminal(self) -> bool:
        return self in (ConversationPhase.STEP_4_ASSESS, ConversationPhase.EMERGENCY_EXIT)


class ConversationState(BaseModel):
    """Answers collected so far for one care subject in one session."""

    model_config = ConfigDict(frozen=True)

    profile_id: str = Field(min_length=1)
    phase: ConversationPhase = ConversationPhase.STEP_0_SYMPTOM
    symptoms: tuple[str, ...] = ()
    duration: str = ""
    severity: int | None = Field(None, ge=1, le=10)
    red_flags: tuple[str, ...] = ()
    is_emergency: bool = False
    is_crisis: bool = False  # emergency exit caused by crisis language
    step: int = Field(0, ge=0, le=5)
    answers: dict[int, str] = Field(default_factory=dict)

    @field_validator("red_flags", mode="before")
    @classmethod
    def dedupe_red_flags(cls, v: object) -> object:
        return _dedupe(v)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def presenting_complaint(self) -> str | None:
        return self.symptoms[0] if self.symptoms else None


class MessageType(str, Enum):
    """Author/kind of a transcript entry."""

    CAREBOW = "carebow"
    USER = "user"
    SYSTEM = "system"
    EMERGENCY = "emergency"


class Tone(str, Enum):
    """Voice the engine uses when addressing the user."""

    REASSURING = "reassuring"
    CAUTIOUS = "cautious"
    URGENT = "urgent"  # emergency path only


class Message(BaseModel):
    """Append-only transcript entry."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: MessageType
    content: str
    reasoning: str | None = None
    profile_insight: str | None = None
    tone: Tone | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RiskTolerance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"  # declared for forward compatibility, never produced


class CareMethod(str, Enum):
    """Machine-readable care channel behind a recommendation."""

    SELF_CARE = "self-care"
    VIDEO = "video"
    HOME_VISIT = "home-visit"
    EMERGENCY = "emergency"  # emergency exits only


class PersonalizationRules(BaseModel):
    """Behavioral modifiers derived from a profile."""

    model_config = ConfigDict(frozen=True)

    risk_tolerance: RiskTolerance
    preferred_care_method: CareMethod
    urgency_multiplier: float = Field(ge=1.0)
    tone: Tone
    should_check_medications: bool
    should_refer_past: bool


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RuleFiring(BaseModel):
    """A rule that fired, with the user-facing explanation of why."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    explanation: str
    points: int = Field(default=0, ge=0)


class RiskAssessment(BaseModel):
    """Graduated risk derived from the collected answers and the profile."""

    model_config = ConfigDict(frozen=True)

    level: RiskLevel
    score: int = Field(ge=0)
    reasoning: tuple[RuleFiring, ...] = ()

    @property
    def explanations(self) -> list[str]:
        return [firing.explanation for firing in self.reasoning]

    @property
    def fired_rule_ids(self) -> list[str]:
        return [firing.rule_id for firing in self.reasoning]


class Recommendation(BaseModel):
    """Concrete care recommendation with transparent reasoning."""

    model_config = ConfigDict(frozen=True)

    risk_level: RiskLevel
    care_type: str
    care_method: CareMethod
    urgency: str
    reasoning: str = Field(min_length=1)
    follow_up: str | None = None
    factors: tuple[str, ...] = ()


class TriageLevel(str, Enum):
    """Final actionable classification of a completed conversation."""

    EMERGENCY = "emergency"
    URGENT = "urgent"
    SOON = "soon"
    SELF_CARE = "self_care"


class ActionId(str, Enum):
    """Closed set of action identifiers handed to external collaborators."""

    EMERGENCY_CALL = "emergency_call"
    FIND_ER = "find_er"
    CONNECT_DOCTOR = "connect_doctor"
    BOOK_HOME_VISIT = "book_home_visit"
    SCHEDULE_TELECONSULT = "schedule_teleconsult"
    HOME_VISIT_OPTIONS = "home_visit_options"
    SET_REMINDER = "set_reminder"
    HOME_REMEDIES = "home_remedies"
    SAVE_SHARE = "save_share"


class CTAVariant(str, Enum):
    EMERGENCY = "emergency"
    URGENT = "urgent"
    PRIMARY = "primary"
    DEFAULT = "default"


class CTAAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    action_id: ActionId
    variant: CTAVariant | None = None


class CTAConfig(BaseModel):
    """Which actions the surrounding UI must present for a triage level."""

    model_config = ConfigDict(frozen=True)

    primary: CTAAction
    secondary: CTAAction | None = None
    hint: str | None = None
    tertiary: CTAAction

    @property
    def action_ids(self) -> list[ActionId]:
        actions = [self.primary, self.secondary, self.tertiary]
        return [action.action_id for action in actions if action is not None]


class TriageOutcome(BaseModel):
    """Everything a finished conversation produces."""

    model_config = ConfigDict(frozen=True)

    state: ConversationState
    assessment: RiskAssessment | None = None
    recommendation: Recommendation | None = None
    triage_level: TriageLevel
    cta: CTAConfig
