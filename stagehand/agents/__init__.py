"""Agent run bodies: architect, developer, PM/triage, reviewer."""
