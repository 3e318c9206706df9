"""Prompt builders: pure functions from typed context models to prompt text."""
