"""Syntax gate for generated source files.

``validate_code`` dispatches on the file extension:

- ``.js`` / ``.mjs`` / ``.cjs`` / ``.jsx`` → parsed in-process with tree-sitter (never executed)
- ``.ts`` / ``.tsx``                        → ``tsc --noEmit`` on a temp file (15 s timeout)
- ``.py``                                   → ``python -m py_compile`` on a temp file (5 s timeout)
- ``.json``                                 → ``json.loads``

Anything else is accepted: the gate rejects known-bad output, it is not an
allow-list.  A missing external toolchain is logged and accepted for the same
reason.  Temp files live in a ``TemporaryDirectory`` and are removed on every
exit path, including timeouts.
"""

from __future__ import annotations

import json
import re
import subprocess
import sys
import tempfile
from pathlib import Path

import tree_sitter_javascript
from pydantic import BaseModel, Field
from tree_sitter import Language, Node, Parser

from stagehand.core.logging import get_logger

logger = get_logger("core.validator")

TSC_TIMEOUT = 15
PYTHON_TIMEOUT = 5
MAX_TSC_ERRORS = 5

SCRIPT_EXTENSIONS = {"js", "mjs", "cjs"}

JS_LANGUAGE = Language(tree_sitter_javascript.language())

# npx prints these when tsc is not installed locally (``--no-install``)
_NPX_MISSING_MARKERS = re.compile(r"npm ERR!|npm error|could not determine executable", re.IGNORECASE)


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def failed(cls, *errors: str) -> ValidationResult:
        return cls(valid=False, errors=[e for e in errors if e] or ["unknown error"])


class BatchValidation(BaseModel):
    valid: bool = True
    file_errors: dict[str, list[str]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_code(content: str, path: str) -> ValidationResult:
    """Validate *content* according to the extension of *path*."""
    ext = Path(path).suffix.lower().lstrip(".")

    if ext in SCRIPT_EXTENSIONS:
        return validate_javascript(content)
    if ext == "ts":
        return validate_typescript(content, tsx=False)
    if ext == "tsx":
        return validate_typescript(content, tsx=True)
    if ext == "jsx":
        return validate_jsx(content)
    if ext == "py":
        return validate_python(content)
    if ext == "json":
        return validate_json(content)

    return ValidationResult.ok()


def validate_all_files(files: list[dict[str, str]]) -> BatchValidation:
    """Validate ``[{"path": ..., "content": ...}, ...]`` and collect per-file errors."""
    result = BatchValidation()
    for item in files:
        outcome = validate_code(item["content"], item["path"])
        if not outcome.valid:
            result.valid = False
            result.file_errors[item["path"]] = outcome.errors
    return result


# ---------------------------------------------------------------------------
# In-process checks
# ---------------------------------------------------------------------------


def _first_syntax_error(node: Node) -> Node | None:
    """Depth-first search for the earliest ERROR or MISSING node."""
    if node.is_error or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.is_missing:
            found = _first_syntax_error(child)
            if found is not None:
                return found
    return None


def _jsx_tag_name(tag: Node | None) -> str | None:
    if tag is None:
        return None
    name = tag.child_by_field_name("name")
    return name.text.decode("utf-8") if name is not None else None


def _mismatched_jsx_tag(node: Node) -> Node | None:
    """First closing tag whose name differs from its opening tag; the grammar does not check names."""
    if node.type == "jsx_element":
        open_tag = node.child_by_field_name("open_tag")
        close_tag = node.child_by_field_name("close_tag")
        if _jsx_tag_name(open_tag) != _jsx_tag_name(close_tag):
            return close_tag
    for child in node.named_children:
        found = _mismatched_jsx_tag(child)
        if found is not None:
            return found
    return None


def _position(node: Node) -> str:
    row, column = node.start_point
    return f"line {row + 1}, column {column + 1}"


def validate_javascript(code: str) -> ValidationResult:
    """Parse *code* as modern JavaScript (JSX included) without executing it."""
    tree = Parser(JS_LANGUAGE).parse(code.encode("utf-8"))
    root = tree.root_node

    if root.has_error:
        error = _first_syntax_error(root) or root
        if error.is_missing:
            return ValidationResult.failed(f"SyntaxError: missing '{error.type}' at {_position(error)}")
        snippet = error.text.decode("utf-8", errors="replace").strip().splitlines()
        token = snippet[0][:40] if snippet else ""
        return ValidationResult.failed(f"SyntaxError: unexpected '{token}' at {_position(error)}")

    mismatch = _mismatched_jsx_tag(root)
    if mismatch is not None:
        return ValidationResult.failed(
            f"SyntaxError: mismatched JSX closing tag '{mismatch.text.decode('utf-8')}' at {_position(mismatch)}"
        )
    return ValidationResult.ok()


def validate_jsx(code: str) -> ValidationResult:
    return validate_javascript(code)


def validate_json(code: str) -> ValidationResult:
    try:
        json.loads(code)
        return ValidationResult.ok()
    except json.JSONDecodeError as exc:
        return ValidationResult.failed(str(exc))


# ---------------------------------------------------------------------------
# Out-of-process checks
# ---------------------------------------------------------------------------


def _run_on_temp_file(
    code: str,
    suffix: str,
    build_cmd,
    timeout: int,
    tool: str,
) -> tuple[subprocess.CompletedProcess | None, ValidationResult | None]:
    """Write *code* to a scoped temp file and run ``build_cmd(path)`` on it.

    Returns ``(proc, None)`` when the tool ran, or ``(None, result)`` when the
    outcome is already decided (timeout → invalid, tool missing → valid).
    """
    with tempfile.TemporaryDirectory(prefix="stagehand-validate-") as tmp_dir:
        tmp_file = Path(tmp_dir) / f"validate{suffix}"
        tmp_file.write_text(code, encoding="utf-8")
        try:
            proc = subprocess.run(
                build_cmd(str(tmp_file)),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            logger.warning("%s not available, skipping validation", tool)
            return None, ValidationResult.ok()
        except subprocess.TimeoutExpired:
            logger.warning("%s timed out after %ds", tool, timeout)
            return None, ValidationResult.failed(f"{tool} timed out after {timeout}s")
    return proc, None


def validate_typescript(code: str, tsx: bool = False) -> ValidationResult:
    suffix = ".tsx" if tsx else ".ts"

    def cmd(path: str) -> list[str]:
        args = ["npx", "--no-install", "tsc", "--noEmit", "--allowJs", "--skipLibCheck"]
        if tsx:
            args += ["--jsx", "react"]
        return args + [path]

    proc, decided = _run_on_temp_file(code, suffix, cmd, TSC_TIMEOUT, "tsc")
    if decided is not None:
        return decided
    if proc.returncode == 0:
        return ValidationResult.ok()

    output = (proc.stdout or "") + (proc.stderr or "")
    if "error TS" not in output and _NPX_MISSING_MARKERS.search(output):
        logger.warning("tsc not installed, skipping validation: %s", output.strip()[:200])
        return ValidationResult.ok()
    errors = [line for line in output.splitlines() if "error" in line][:MAX_TSC_ERRORS]
    return ValidationResult.failed(*(errors or [output[:500]]))


def validate_python(code: str) -> ValidationResult:
    def cmd(path: str) -> list[str]:
        return [sys.executable, "-m", "py_compile", path]

    proc, decided = _run_on_temp_file(code, ".py", cmd, PYTHON_TIMEOUT, "py_compile")
    if decided is not None:
        return decided
    if proc.returncode == 0:
        return ValidationResult.ok()
    return ValidationResult.failed((proc.stderr or proc.stdout or "").strip())
