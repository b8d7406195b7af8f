"""Adapters connecting triage outcomes to external collaborators."""
