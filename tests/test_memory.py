"""Tests for the project memory documents stored in the repository."""
from __future__ import annotations

import re
from unittest.mock import MagicMock

import pytest

from infra.forge import ForgeClient
from stagehand.core.memory import MEMORY_FILES, ProjectMemory


@pytest.fixture
def files():
    return {}


@pytest.fixture
def memory(files):
    tracker = MagicMock(spec=ForgeClient)
    tracker.get_file_content.side_effect = lambda path, ref="main": files.get(path)

    def write(path, content, message, branch):
        files[path] = content

    tracker.create_or_update_file.side_effect = write
    return ProjectMemory(tracker)


class TestRead:
    def test_paths(self):
        assert MEMORY_FILES == {
            "project": "memory/project_context.md",
            "conventions": "memory/conventions.md",
            "decisions": "memory/decisions.md",
        }

    def test_get_missing(self, memory):
        assert memory.get("project") is None

    def test_get_reads_main(self, memory, files):
        files["memory/conventions.md"] = "# Conventions"
        assert memory.get("conventions") == "# Conventions"
        memory.tracker.get_file_content.assert_called_with("memory/conventions.md", ref="main")

    def test_all_context_placeholders(self, memory):
        context = memory.get_all_context()
        assert context.project == "No project context documented yet."
        assert context.conventions == "No conventions documented yet."
        assert context.decisions == "No decisions documented yet."

    def test_all_context_reads_every_document(self, memory, files):
        files["memory/project_context.md"] = "# Shop"
        files["memory/decisions.md"] = "# ADRs"
        context = memory.get_all_context()
        assert context.project == "# Shop"
        assert context.decisions == "# ADRs"
        assert memory.tracker.get_file_content.call_count == 3


class TestWrite:
    def test_put_prefixes_message(self, memory):
        memory.put("project", "# Shop", "Project plan created: Shop")
        memory.tracker.create_or_update_file.assert_called_once_with(
            "memory/project_context.md", "# Shop", "memory: Project plan created: Shop", "main",
        )

    def test_update_project_context_default_message(self, memory):
        memory.update_project_context("# Shop")
        assert memory.tracker.create_or_update_file.call_args.args[2] == "memory: Update project context"

    def test_add_convention_to_new_document(self, memory, files):
        memory.add_convention("Use snake_case")
        assert files["memory/conventions.md"] == "# Coding Conventions\n\n\n- Use snake_case"

    def test_add_convention_appends(self, memory, files):
        files["memory/conventions.md"] = "# Coding Conventions\n\n- One"
        memory.add_convention("Two")
        assert files["memory/conventions.md"].endswith("- One\n- Two")

    def test_add_decision(self, memory, files):
        memory.add_decision("Use Postgres", "Need relational data", "Postgres 16", ["MySQL", "SQLite"])
        text = files["memory/decisions.md"]
        assert text.startswith("# Architecture Decision Records\n")
        assert "## Use Postgres" in text
        assert re.search(r"\*\*Date:\*\* \d{4}-\d{2}-\d{2}", text)
        assert "### Context\nNeed relational data" in text
        assert "### Decision\nPostgres 16" in text
        assert "- MySQL\n- SQLite" in text
        assert memory.tracker.create_or_update_file.call_args.args[2] == "memory: ADR - Use Postgres"

    def test_add_decision_without_alternatives(self, memory, files):
        memory.add_decision("T", "c", "d")
        assert "### Alternatives Considered\nNone documented." in files["memory/decisions.md"]

    def test_custom_branch(self, files):
        tracker = MagicMock(spec=ForgeClient)
        ProjectMemory(tracker, branch="trunk").put("project", "x", "m")
        assert tracker.create_or_update_file.call_args.args[3] == "trunk"
