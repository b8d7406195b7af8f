"""Personalized health triage engine.

This package contains the triage domain models and the deterministic rule
services, isolated from any UI or storage layer for easy testing and reasoning.
"""

from triage.observability import configure_default_logging

configure_default_logging()
