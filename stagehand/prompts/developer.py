"""Developer prompts: implementation plan, file generation, PR body."""

from __future__ import annotations

from pydantic import BaseModel, Field

PLAN_SYSTEM = (
    "You are a senior developer creating implementation plans. "
    "Be practical and focused. Respond ONLY with valid JSON, no markdown."
)
IMPLEMENT_SYSTEM = "You are an expert programmer. Output only code, no explanations or markdown code fences."
PR_BODY_SYSTEM = "You write clear PR descriptions."

# Only the first paths of the repository tree go into the plan prompt.
MAX_TREE_PATHS = 100


class IssueAnalysisContext(BaseModel):
    title: str
    body: str = ""
    structure: list[str] = Field(default_factory=list)
    project_context: str = ""
    conventions: str = ""


class ImplementFileContext(BaseModel):
    task: str
    path: str
    action: str
    summary: str
    conventions: str = ""
    existing_content: str | None = None
    previous_errors: list[str] = Field(default_factory=list)


class PRBodyContext(BaseModel):
    issue_title: str
    issue_body: str = ""
    summary: str
    files: list[tuple[str, str]] = Field(default_factory=list)  # (path, description)


def analyze_issue(ctx: IssueAnalysisContext) -> str:
    structure = "\n".join(ctx.structure[:MAX_TREE_PATHS])
    return f"""You are a senior software developer analyzing a GitHub issue to create an implementation plan.

## Issue
Title: {ctx.title}
Body: 
{ctx.body or "No description provided."}

## Repository Structure
{structure}

## Project Context
{ctx.project_context}

## Coding Conventions
{ctx.conventions}

## Task
Analyze this issue and create a detailed implementation plan.

Respond in JSON format:
{{
  "summary": "Brief 1-2 sentence description of the approach",
  "files": [
    {{
      "path": "path/to/file.js",
      "action": "create" | "modify",
      "description": "What changes to make"
    }}
  ],
  "steps": ["Step 1", "Step 2", "..."],
  "testStrategy": "How to test these changes",
  "potentialIssues": ["Risk 1", "Risk 2"]
}}"""


def implement_file(ctx: ImplementFileContext) -> str:
    if ctx.existing_content:
        source = f"## Existing Content\n```\n{ctx.existing_content}\n```"
    else:
        source = "## New File\nCreate this file from scratch."

    prompt = f"""You are an expert programmer implementing a feature.

## Task
{ctx.task}

## File: {ctx.path}
Action: {ctx.action}

{source}

## Overall Context
{ctx.summary}

## Conventions
{ctx.conventions}

## Instructions
Generate the complete file content. Follow these rules:
1. Write clean, production-quality code
2. Include appropriate error handling
3. Add helpful comments for complex logic
4. Follow the project's coding conventions
5. Make the code self-documenting

Output ONLY the code, no explanations or markdown code blocks."""

    if ctx.previous_errors:
        errors = "\n".join(ctx.previous_errors)
        prompt += f"\n\nPrevious attempt had validation errors. Please fix:\n{errors}"
    return prompt


def pr_body(ctx: PRBodyContext) -> str:
    files = "\n".join(f"- {path}: {description}" for path, description in ctx.files)
    return f"""Generate a pull request description for these changes.

## Original Issue
Title: {ctx.issue_title}
Body: {ctx.issue_body or "No description"}

## Implementation Summary
{ctx.summary}

## Files Changed
{files}

Create a clear, well-structured PR description in markdown format including:
1. Summary of changes
2. How it addresses the issue
3. Testing done/needed
4. Any notes for reviewers

Start with "## Summary" - do not include a title."""
