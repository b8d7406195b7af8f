"""
Triage engine services.

This package contains the conversation state machine and the rule engines it
drives: personalization, emergency and medication safety, risk scoring,
recommendation and CTA mapping.
"""

from .conversation import (
    ConversationClosedError,
    ProfileMismatchError,
    TriageSession,
    advance,
    parse_red_flags,
    parse_severity,
    start_conversation,
)
from .cta import get_cta_config, get_tertiary_action, get_triage_level, triage_for_state
from .personalization import build_privacy_message, get_personalization_rules, is_repeated_symptom
from .risk import assess_risk, build_refusal_message, generate_recommendation
from .safety import EmergencyScreen, check_medication_safety, detect_emergency

__all__ = [
    "ConversationClosedError",
    "ProfileMismatchError",
    "TriageSession",
    "advance",
    "parse_red_flags",
    "parse_severity",
    "start_conversation",
    "get_cta_config",
    "get_tertiary_action",
    "get_triage_level",
    "triage_for_state",
    "build_privacy_message",
    "get_personalization_rules",
    "is_repeated_symptom",
    "assess_risk",
    "build_refusal_message",
    "generate_recommendation",
    "EmergencyScreen",
    "check_medication_safety",
    "detect_emergency",
]
