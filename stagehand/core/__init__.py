"""Core building blocks shared by every agent."""
