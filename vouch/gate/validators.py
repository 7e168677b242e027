"""Built-in validators for Python source artifacts.

Four checks mirroring a typical code-review gate: architecture
compliance, coding standards, error handling and security practices.
They inspect created or modified ``.py`` files only; other files and
deletions are ignored. Checks are static (``ast`` plus a few regexes)
and never import or run the generated code.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Iterator

from vouch.schemas.context import Artifact, ArtifactFile, FileOperation, StoryContext
from vouch.schemas.validation import ValidationReport

# Hardcoded credential assignments, e.g. API_KEY = "sk-..."
_SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"api[_-]?key\s*=\s*['\"][^'\"]{20,}['\"]", re.IGNORECASE),
    re.compile(r"password\s*=\s*['\"][^'\"]+['\"]", re.IGNORECASE),
    re.compile(r"secret\s*=\s*['\"][^'\"]{20,}['\"]", re.IGNORECASE),
    re.compile(r"token\s*=\s*['\"][^'\"]{20,}['\"]", re.IGNORECASE),
    re.compile(r"private[_-]?key\s*=\s*['\"][^'\"]+['\"]", re.IGNORECASE),
)

_SENSITIVE_WORDS = ("password", "token", "secret", "api_key", "apikey")

_SQL_KEYWORDS = re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE)\b")

_LOG_METHODS = frozenset({"debug", "info", "warning", "error", "exception", "critical"})

_SNAKE_CASE_FILE = re.compile(r"^[a-z_][a-z0-9_]*\.py$")
_PASCAL_CASE = re.compile(r"^_?[A-Z][A-Za-z0-9]*$")
_SNAKE_CASE = re.compile(r"^_{0,2}[a-z][a-z0-9_]*_{0,2}$")

# Module length above which missing input validation is worth a warning
_LONG_MODULE_CHARS = 1000


def _python_sources(artifact: Artifact) -> Iterator[ArtifactFile]:
    for file in artifact.files:
        if file.operation == FileOperation.DELETE or not file.path.endswith(".py"):
            continue
        yield file


def _is_test_file(path: str) -> bool:
    name = path.rsplit("/", 1)[-1]
    return name.startswith("test_") or name.endswith("_test.py") or "/tests/" in f"/{path}"


def _parse(file: ArtifactFile, issues: list[str] | None = None) -> ast.Module | None:
    """Parse a source file. Only the caller passing ``issues`` reports syntax errors."""
    try:
        return ast.parse(file.content, filename=file.path)
    except SyntaxError as e:
        if issues is not None:
            issues.append(f"File {file.path} has a syntax error at line {e.lineno}: {e.msg}")
        return None


def _report(category: str, issues: list[str], warnings: list[str]) -> ValidationReport:
    return ValidationReport(
        category=category, passed=not issues, issues=issues, warnings=warnings
    )


class ArchitectureComplianceValidator:
    """Structural checks: explicit imports, public surface, plugin wiring."""

    category = "architecture_compliance"

    def validate(self, artifact: Artifact, context: StoryContext) -> ValidationReport:
        issues: list[str] = []
        warnings: list[str] = []
        defines_public = False

        for file in _python_sources(artifact):
            tree = _parse(file)
            if tree is None:
                continue

            relative_imports = 0
            for node in ast.walk(tree):
                if isinstance(node, ast.ImportFrom):
                    if any(alias.name == "*" for alias in node.names):
                        issues.append(
                            f"File {file.path} uses a wildcard import from "
                            f"'{node.module or '.'}'. Import names explicitly."
                        )
                    if node.level:
                        relative_imports += 1
            if relative_imports > 3:
                warnings.append(
                    f"File {file.path} has many relative imports. "
                    f"Check for circular dependencies."
                )

            if any(
                isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef)
                and not node.name.startswith("_")
                for node in tree.body
            ):
                defines_public = True

        if not defines_public and any(True for _ in _python_sources(artifact)):
            warnings.append("No public classes or functions defined. Check the module's API.")

        if "plugin" in context.architecture_context.lower() and "plugin" in (
            context.story.title.lower()
        ):
            has_plugin = any(
                "plugin" in f.content.lower() or "register" in f.content
                for f in _python_sources(artifact)
            )
            if not has_plugin:
                warnings.append(
                    "Story mentions plugin but no plugin pattern detected in implementation."
                )

        return _report(self.category, issues, warnings)


class CodingStandardsValidator:
    """Naming and documentation conventions (PEP 8 style)."""

    category = "coding_standards"

    def validate(self, artifact: Artifact, context: StoryContext) -> ValidationReport:
        issues: list[str] = []
        warnings: list[str] = []

        for file in _python_sources(artifact):
            file_name = file.path.rsplit("/", 1)[-1]
            if not _SNAKE_CASE_FILE.match(file_name):
                warnings.append(f"File name {file_name} should be snake_case.")

            tree = _parse(file, issues)
            if tree is None:
                continue

            is_test = _is_test_file(file.path)
            if not is_test and ast.get_docstring(tree) is None:
                warnings.append(f"File {file.path} has no module docstring.")

            for node in ast.walk(tree):
                if isinstance(node, ast.ClassDef) and not _PASCAL_CASE.match(node.name):
                    warnings.append(
                        f"Class {node.name} in {file.path} should be PascalCase."
                    )
                elif isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef):
                    if not _SNAKE_CASE.match(node.name):
                        warnings.append(
                            f"Function {node.name} in {file.path} should be snake_case."
                        )
                elif (
                    not is_test
                    and isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Name)
                    and node.func.id == "print"
                ):
                    warnings.append(
                        f"File {file.path} uses print() at line {node.lineno}. "
                        f"Use logging instead."
                    )

        return _report(self.category, issues, warnings)


class ErrorHandlingValidator:
    """Exceptions must be caught narrowly and never swallowed."""

    category = "error_handling"

    def validate(self, artifact: Artifact, context: StoryContext) -> ValidationReport:
        issues: list[str] = []
        warnings: list[str] = []

        for file in _python_sources(artifact):
            if _is_test_file(file.path):
                continue
            tree = _parse(file)
            if tree is None:
                continue

            for node in ast.walk(tree):
                if isinstance(node, ast.ExceptHandler):
                    if node.type is None:
                        issues.append(
                            f"File {file.path} has a bare except at line {node.lineno}. "
                            f"Catch specific exceptions."
                        )
                    if all(isinstance(stmt, ast.Pass) for stmt in node.body):
                        issues.append(
                            f"File {file.path} swallows an exception at line {node.lineno}. "
                            f"Log or re-raise it."
                        )
                elif isinstance(node, ast.Raise) and _is_messageless_raise(node):
                    warnings.append(
                        f"File {file.path} raises an exception without a message "
                        f"at line {node.lineno}."
                    )

            has_handlers = any(isinstance(n, ast.ExceptHandler) for n in ast.walk(tree))
            if has_handlers and "logger." not in file.content and "logging." not in file.content:
                warnings.append(f"File {file.path} handles exceptions but never logs them.")

            has_checks = any(isinstance(n, ast.If | ast.Raise | ast.Assert) for n in ast.walk(tree))
            if len(file.content) > _LONG_MODULE_CHARS and not has_checks:
                warnings.append(f"File {file.path} may be missing input validation.")

        return _report(self.category, issues, warnings)


def _is_messageless_raise(node: ast.Raise) -> bool:
    exc = node.exc
    if not isinstance(exc, ast.Call) or exc.args or exc.keywords:
        return False
    return isinstance(exc.func, ast.Name) and exc.func.id in {"Exception", "RuntimeError", "ValueError"}


class SecurityPracticesValidator:
    """Secrets, injection and unsafe-evaluation checks."""

    category = "security_practices"

    def validate(self, artifact: Artifact, context: StoryContext) -> ValidationReport:
        issues: list[str] = []
        warnings: list[str] = []

        for file in _python_sources(artifact):
            if _is_test_file(file.path):
                continue
            content = file.content

            if any(pattern.search(content) for pattern in _SECRET_PATTERNS):
                issues.append(
                    f"File {file.path} may contain hardcoded secrets. "
                    f"Use environment variables instead."
                )

            if "http://" in content and "https://" in content:
                warnings.append(
                    f"File {file.path} contains both HTTP and HTTPS URLs. Prefer HTTPS."
                )

            tree = _parse(file)
            if tree is None:
                continue

            for node in ast.walk(tree):
                if not isinstance(node, ast.Call):
                    continue
                name = _call_name(node)
                if name in {"eval", "exec"}:
                    issues.append(
                        f"File {file.path} uses {name}() at line {node.lineno}. "
                        f"This is a critical security risk."
                    )
                elif name in {"execute", "executemany", "executescript"} and node.args:
                    if _is_dynamic_sql(node.args[0]):
                        issues.append(
                            f"File {file.path} may have SQL injection vulnerability at "
                            f"line {node.lineno}. Use parameterized queries."
                        )
                elif name in _LOG_METHODS and _logs_sensitive_data(node):
                    issues.append(
                        f"File {file.path} may be logging sensitive data at line "
                        f"{node.lineno}. Remove passwords/tokens from logs."
                    )
                elif name == "run" and any(
                    kw.arg == "shell" and isinstance(kw.value, ast.Constant) and kw.value.value
                    for kw in node.keywords
                ):
                    warnings.append(
                        f"File {file.path} runs a subprocess with shell=True at line "
                        f"{node.lineno}."
                    )

        return _report(self.category, issues, warnings)


def _call_name(node: ast.Call) -> str:
    func = node.func
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return ""


def _is_dynamic_sql(arg: ast.expr) -> bool:
    """True for SQL built by concatenation, f-strings or %-formatting."""
    if isinstance(arg, ast.JoinedStr):
        text = "".join(
            v.value for v in arg.values if isinstance(v, ast.Constant) and isinstance(v.value, str)
        )
        return bool(_SQL_KEYWORDS.search(text.upper()))
    if isinstance(arg, ast.BinOp) and isinstance(arg.op, ast.Add | ast.Mod):
        return any(
            isinstance(n, ast.Constant)
            and isinstance(n.value, str)
            and _SQL_KEYWORDS.search(n.value.upper())
            for n in ast.walk(arg)
        )
    if isinstance(arg, ast.Call) and _call_name(arg) == "format":
        return isinstance(arg.func, ast.Attribute) and _is_sql_literal(arg.func.value)
    return False


def _is_sql_literal(node: ast.expr) -> bool:
    return (
        isinstance(node, ast.Constant)
        and isinstance(node.value, str)
        and bool(_SQL_KEYWORDS.search(node.value.upper()))
    )


def _logs_sensitive_data(node: ast.Call) -> bool:
    if not isinstance(node.func, ast.Attribute):
        return False
    owner = node.func.value
    if not (isinstance(owner, ast.Name) and owner.id in {"logger", "logging", "log"}):
        return False
    for arg in node.args[1:]:
        if isinstance(arg, ast.Name | ast.Attribute):
            text = ast.unparse(arg).lower()
            if any(word in text for word in _SENSITIVE_WORDS):
                return True
    if node.args and isinstance(node.args[0], ast.JoinedStr):
        for value in node.args[0].values:
            if isinstance(value, ast.FormattedValue):
                text = ast.unparse(value.value).lower()
                if any(word in text for word in _SENSITIVE_WORDS):
                    return True
    return False


def default_validators() -> list:
    """All built-in validators, in reporting order."""
    return [
        ArchitectureComplianceValidator(),
        CodingStandardsValidator(),
        ErrorHandlingValidator(),
        SecurityPracticesValidator(),
    ]
