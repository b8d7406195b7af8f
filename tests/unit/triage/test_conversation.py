"""
Tests for the conversation state machine and the session wrapper.

Covers:
- Answer parsing (severity buckets and clamping, red flag detection)
- Step transitions, blank turns and misuse errors
- Emergency and crisis interrupts from any non-terminal step
- End-to-end outcome for an elder with a chronic condition
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from triage.domain.models import (
    ActionId,
    CareMethod,
    ConversationPhase,
    ConversationState,
    MessageType,
    PastSession,
    ProfileContext,
    RiskLevel,
    Tone,
    TriageLevel,
)
from triage.services.conversation import (
    ConversationClosedError,
    ProfileMismatchError,
    TriageSession,
    advance,
    parse_red_flags,
    parse_severity,
    start_conversation,
)
from triage.services.safety import EmergencyScreen

E2E_ANSWERS = ["headache", "2 days", "8", "yes"]


@pytest.fixture
def dad() -> ProfileContext:
    return ProfileContext(
        id="dad",
        name="Dad",
        relationship="father",
        age=65,
        conditions=("Hypertension",),
        medications=("Lisinopril",),
        allergies=("Penicillin",),
        blood_group="B+",
    )


def _run(state: ConversationState, profile: ProfileContext, answers: list[str]):
    messages = []
    for answer in answers:
        state, replies = advance(state, profile, answer)
        messages.extend(replies)
    return state, messages


class TestParseSeverity:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1-3 (Mild)", 2),
            ("pretty mild", 2),
            ("4-6 (Moderate)", 5),
            ("7-10 (Severe)", 8),
            ("very severe, maybe 3", 8),
            ("8", 8),
            ("  7 out of 10", 7),
            ("15", 10),
            ("0", 1),
            ("-3", 1),
            ("ten", 5),
            ("no idea", 5),
        ],
    )
    def test_parsing(self, text: str, expected: int) -> None:
        assert parse_severity(text) == expected

    @given(text=st.text(max_size=30))
    def test_always_in_range(self, text: str) -> None:
        assert 1 <= parse_severity(text) <= 10


class TestParseRedFlags:
    @pytest.mark.parametrize("text", ["no", "No, none of those", "not sure"])
    def test_no_flags_without_yes(self, text: str) -> None:
        assert parse_red_flags(text) == ()

    def test_plain_yes_is_generic(self) -> None:
        assert parse_red_flags("Yes") == ("Warning signs present",)

    def test_named_items_are_labelled(self) -> None:
        flags = parse_red_flags("yes, a fever and I can’t keep water down")
        assert flags == ("Fever over 102°F", "Unable to keep food/water down")

    def test_mild_pain_is_not_severe_pain(self) -> None:
        assert parse_red_flags("yes, a little mild pain") == ("Warning signs present",)

    def test_bad_pain_is_severe_pain(self) -> None:
        assert parse_red_flags("yes, really bad pain") == ("Severe pain",)


class TestStartConversation:
    def test_complete_profile_gets_opening_only(self, dad: ProfileContext) -> None:
        state, messages = start_conversation(dad)

        assert state.profile_id == "dad"
        assert state.phase == ConversationPhase.STEP_0_SYMPTOM
        assert len(messages) == 1
        assert "Hypertension" in messages[0].content

    def test_missing_data_adds_advisory(self) -> None:
        profile = ProfileContext(id="x", name="Sam", relationship="other")
        _, messages = start_conversation(profile)

        assert [m.type for m in messages] == [MessageType.CAREBOW, MessageType.SYSTEM]

    def test_privacy_notice_is_appended_on_request(self, dad: ProfileContext) -> None:
        _, messages = start_conversation(dad, privacy_notice=True)

        assert len(messages) == 2
        assert messages[-1].type == MessageType.SYSTEM
        assert "never sold or shared" in messages[-1].content


class TestAdvance:
    def test_answers_are_recorded_per_step(self, dad: ProfileContext) -> None:
        state, _ = start_conversation(dad)
        state, messages = _run(state, dad, E2E_ANSWERS[:3])

        assert state.phase == ConversationPhase.STEP_3_RED_FLAGS
        assert state.step == 3
        assert state.symptoms == ("headache",)
        assert state.presenting_complaint == "headache"
        assert state.duration == "2 days"
        assert state.severity == 8
        assert state.answers == {0: "headache", 1: "2 days", 2: "8"}
        assert len(messages) == 3
        assert all(m.reasoning for m in messages)

    def test_advance_does_not_mutate_input(self, dad: ProfileContext) -> None:
        state, _ = start_conversation(dad)
        new_state, _ = advance(state, dad, "headache")

        assert state.step == 0
        assert state.symptoms == ()
        assert new_state.step == 1

    @pytest.mark.parametrize("blank", ["", "   ", "\n"])
    def test_blank_utterance_is_not_a_turn(self, dad: ProfileContext, blank: str) -> None:
        state, _ = start_conversation(dad)
        new_state, messages = advance(state, dad, blank)

        assert new_state is state
        assert messages == []

    def test_past_session_is_referenced_in_duration_question(
        self, dad: ProfileContext
    ) -> None:
        profile = dad.model_copy(
            update={
                "past_sessions": (
                    PastSession(
                        date="3 weeks ago",
                        symptoms=("headache",),
                        outcome="Recommended a video consultation",
                        resolution="Resolved with rest",
                    ),
                )
            }
        )
        state, _ = start_conversation(profile)
        _, messages = advance(state, profile, "a throbbing headache")

        assert messages[0].profile_insight is not None
        assert "3 weeks ago" in messages[0].profile_insight

    def test_terminal_state_rejects_turns(self, dad: ProfileContext) -> None:
        state, _ = start_conversation(dad)
        state, _ = _run(state, dad, E2E_ANSWERS)

        with pytest.raises(ConversationClosedError):
            advance(state, dad, "one more thing")

    def test_profile_mismatch_is_rejected(self, dad: ProfileContext) -> None:
        state, _ = start_conversation(dad)
        other = ProfileContext(id="mom", name="Mom", relationship="mother")

        with pytest.raises(ProfileMismatchError):
            advance(state, other, "headache")

    @given(step=st.integers(min_value=0, max_value=3))
    def test_emergency_interrupts_any_step(self, step: int) -> None:
        profile = ProfileContext(id="p", name="Sam", relationship="other", age=40)
        state, _ = start_conversation(profile)
        state, _ = _run(state, profile, ["cough", "2 days", "4"][:step])

        new_state, messages = advance(state, profile, "now I have chest pain")

        assert new_state.phase == ConversationPhase.EMERGENCY_EXIT
        assert new_state.is_emergency
        assert new_state.step == step
        assert [m.type for m in messages] == [MessageType.EMERGENCY]
        with pytest.raises(ConversationClosedError):
            advance(new_state, profile, "ok")

    def test_emergency_exit_does_not_share_answers(self, dad: ProfileContext) -> None:
        state, _ = start_conversation(dad)
        state, _ = _run(state, dad, ["headache", "2 days"])

        new_state, _ = advance(state, dad, "he has chest pain now")
        new_state.answers[2] = "changed"

        assert new_state.answers is not state.answers
        assert state.answers == {0: "headache", 1: "2 days"}

    def test_crisis_language_exits_with_support_message(self, dad: ProfileContext) -> None:
        state, _ = start_conversation(dad)
        state, _ = _run(state, dad, ["trouble sleeping"])

        new_state, messages = advance(state, dad, "honestly I just want to die")

        assert new_state.phase == ConversationPhase.EMERGENCY_EXIT
        assert new_state.is_emergency
        assert new_state.is_crisis
        assert messages[0].tone == Tone.REASSURING
        assert "You don't have to handle this alone" in messages[0].content

    def test_custom_screen_sets_emergency_number(self, dad: ProfileContext) -> None:
        state, _ = start_conversation(dad)
        _, messages = advance(
            state, dad, "he had a stroke", screen=EmergencyScreen(emergency_number="112")
        )

        assert "Call 112" in messages[0].content

    @given(
        answers=st.lists(
            st.text(alphabet="abcdefgh ", min_size=1).filter(str.strip), min_size=4, max_size=4
        )
    )
    def test_each_accepted_turn_yields_one_message(self, answers: list[str]) -> None:
        profile = ProfileContext(id="p", name="Sam", relationship="other", age=40)
        state, _ = start_conversation(profile)

        steps = []
        for answer in answers:
            state, replies = advance(state, profile, answer)
            assert len(replies) == 1
            steps.append(state.step)

        assert steps == [1, 2, 3, 4]
        assert state.phase == ConversationPhase.STEP_4_ASSESS


class TestTriageSession:
    def test_end_to_end_elder_with_hypertension(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        for answer in E2E_ANSWERS:
            session.send(answer)

        outcome = session.outcome()

        assert session.is_finished
        assert outcome.assessment is not None
        assert outcome.assessment.score == 7
        assert outcome.assessment.level == RiskLevel.HIGH
        assert outcome.recommendation is not None
        assert outcome.recommendation.care_type == "Home visit"
        assert outcome.recommendation.urgency == "within 6 hours"
        # Red flags at severity 8 escalate the CTA past the risk level
        assert outcome.triage_level == TriageLevel.EMERGENCY
        assert outcome.cta.primary.action_id == ActionId.EMERGENCY_CALL

    def test_transcript_interleaves_user_and_engine(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        session.send("headache")
        session.send("   ")

        types = [m.type for m in session.transcript]
        assert types == [MessageType.CAREBOW, MessageType.USER, MessageType.CAREBOW]

    def test_emergency_outcome_has_no_recommendation(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        session.send("Dad can't breathe")

        outcome = session.outcome()

        assert outcome.assessment is None
        assert outcome.recommendation is None
        assert outcome.triage_level == TriageLevel.EMERGENCY

    def test_outcome_before_finish_raises(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        with pytest.raises(RuntimeError):
            session.outcome()

    def test_switch_profile_discards_state(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        session.send("headache")
        session.send("2 days")
        mom = ProfileContext(id="mom", name="Mom", relationship="mother", age=58)

        opening = session.switch_profile(mom)

        assert session.state.profile_id == "mom"
        assert session.state.step == 0
        assert session.state.symptoms == ()
        assert opening[0].type == MessageType.CAREBOW

    def test_propose_treatment_logs_verdict(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)

        blocked = session.propose_treatment("Penicillin VK")
        allowed = session.propose_treatment("Ibuprofen")

        assert not blocked.safe
        assert allowed.safe
        assert session.transcript[-2].type == MessageType.SYSTEM
        assert "Azithromycin" in session.transcript[-2].content

    def test_crisis_outcome_is_emergency_level(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        session.send("everything feels hopeless")

        outcome = session.outcome()

        assert outcome.state.is_crisis
        assert outcome.triage_level == TriageLevel.EMERGENCY

    def test_privacy_notice_opens_transcript(self, dad: ProfileContext) -> None:
        session = TriageSession(dad, privacy_notice=True)
        mom = ProfileContext(id="mom", name="Mom", relationship="mother", age=58)

        opening = session.switch_profile(mom)

        assert "never sold or shared" in session.transcript[1].content
        assert "never sold or shared" in opening[-1].content


class TestDeclineRecommendation:
    def test_declining_home_visit_names_the_risk(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        for answer in E2E_ANSWERS:
            session.send(answer)

        message = session.decline_recommendation()

        assert "delaying in-person assessment could miss important signs" in message.content
        assert message.tone == Tone.CAUTIOUS
        assert session.transcript[-1] is message

    def test_declining_after_emergency_exit(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        session.send("I think it's a heart attack")

        message = session.decline_recommendation()

        assert "life-threatening" in message.content
        assert message.tone == Tone.URGENT

    def test_self_care_has_nothing_to_decline(self) -> None:
        profile = ProfileContext(id="p", name="Sam", relationship="other", age=40)
        session = TriageSession(profile)
        for answer in ["cough", "today", "2", "no"]:
            session.send(answer)
        assert session.outcome().recommendation.care_method == CareMethod.SELF_CARE

        with pytest.raises(ValueError):
            session.decline_recommendation()

    def test_declining_before_finish_raises(self, dad: ProfileContext) -> None:
        session = TriageSession(dad)
        session.send("headache")

        with pytest.raises(RuntimeError):
            session.decline_recommendation()
