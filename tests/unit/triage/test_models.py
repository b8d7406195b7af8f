"""Tests for the triage domain models and the Result type."""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from triage.domain.models import (
    ConversationPhase,
    ConversationState,
    Message,
    MessageType,
    ProfileContext,
    Relationship,
)
from triage.result import Result


class TestResult:
    """Test the Result type for explicit error handling."""

    def test_result_ok_creates_successful_result(self) -> None:
        result: Result[str, Exception] = Result.ok("success")
        assert result.is_ok()
        assert not result.is_err()
        assert result.unwrap() == "success"

    def test_result_error_creates_failed_result(self) -> None:
        error = LookupError("missing")
        result: Result[str, LookupError] = Result.err(error)
        assert result.is_err()
        assert result.unwrap_err() is error
        assert not result.is_ok()

    def test_unwrap_raises_on_error_result(self) -> None:
        result: Result[str, ValueError] = Result.err(ValueError("boom"))
        with pytest.raises(ValueError, match="boom"):
            result.unwrap()

    def test_unwrap_err_on_ok_raises(self) -> None:
        with pytest.raises(ValueError):
            Result.ok(1).unwrap_err()

    def test_result_requires_exactly_one_side(self) -> None:
        with pytest.raises(ValueError):
            Result()
        with pytest.raises(ValueError):
            Result(value=1, error=ValueError("x"))


class TestProfileContext:
    def test_relationship_is_case_insensitive(self) -> None:
        profile = ProfileContext(id="p1", name="Dad", relationship="Father")
        assert profile.relationship == Relationship.FATHER
        assert not profile.is_self

    def test_negative_age_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProfileContext(id="p1", name="Dad", relationship="father", age=-1)

    def test_conditions_and_allergies_are_deduplicated_in_order(self) -> None:
        profile = ProfileContext(
            id="p1",
            name="Dad",
            relationship="father",
            conditions=["Hypertension", "Diabetes", "Hypertension"],
            allergies=["Penicillin", "Penicillin"],
        )
        assert profile.conditions == ("Hypertension", "Diabetes")
        assert profile.allergies == ("Penicillin",)

    def test_unknown_age_is_neither_child_nor_elder(self) -> None:
        profile = ProfileContext(id="p1", name="Sam", relationship="other")
        assert not profile.is_child
        assert not profile.is_elder

    @given(age=st.integers(min_value=0, max_value=130))
    def test_age_bands_are_exclusive(self, age: int) -> None:
        profile = ProfileContext(id="p1", name="Sam", relationship="other", age=age)
        assert not (profile.is_child and profile.is_elder)
        assert profile.is_elder == (age >= 60)
        assert profile.is_child == (age < 18)

    def test_profile_is_immutable(self) -> None:
        profile = ProfileContext(id="p1", name="Dad", relationship="father")
        with pytest.raises(ValidationError):
            profile.age = 70  # type: ignore[misc]


class TestConversationState:
    def test_initial_state(self) -> None:
        state = ConversationState(profile_id="p1")
        assert state.phase == ConversationPhase.STEP_0_SYMPTOM
        assert state.step == 0
        assert state.severity is None
        assert not state.is_terminal
        assert state.presenting_complaint is None

    @pytest.mark.parametrize("severity", [0, 11])
    def test_severity_outside_range_rejected(self, severity: int) -> None:
        with pytest.raises(ValidationError):
            ConversationState(profile_id="p1", severity=severity)

    def test_step_above_five_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ConversationState(profile_id="p1", step=6)

    def test_state_round_trips_through_json(self) -> None:
        state = ConversationState(
            profile_id="p1",
            phase=ConversationPhase.STEP_2_SEVERITY,
            symptoms=("headache",),
            duration="2 days",
            step=2,
            answers={0: "headache", 1: "2 days"},
        )
        assert ConversationState.model_validate_json(state.model_dump_json()) == state

    @pytest.mark.parametrize(
        "phase,terminal",
        [
            (ConversationPhase.STEP_3_RED_FLAGS, False),
            (ConversationPhase.STEP_4_ASSESS, True),
            (ConversationPhase.EMERGENCY_EXIT, True),
        ],
    )
    def test_terminal_phases(self, phase: ConversationPhase, terminal: bool) -> None:
        assert ConversationState(profile_id="p1", phase=phase).is_terminal is terminal


def test_messages_get_unique_ids_and_utc_timestamps() -> None:
    a = Message(type=MessageType.USER, content="hi")
    b = Message(type=MessageType.USER, content="hi")
    assert a.id != b.id
    assert a.timestamp.tzinfo is not None
