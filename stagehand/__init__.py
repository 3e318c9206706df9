"""Stagehand: LLM agents that plan, implement, review and triage work on GitHub."""

__version__ = "0.1.0"
