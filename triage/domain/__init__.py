"""Domain models for the triage engine."""
