# services/code_executor.py
import asyncio
import logging
import os
import re
import tempfile
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from config import CODE_EXECUTION_TIMEOUT, NODE_BINARY, PYTHON_BINARY

logger = logging.getLogger(__name__)

NUMERIC_TOLERANCE = 0.001
SEMANTIC_TAGS = ["header", "nav", "main", "section", "article", "aside", "footer"]


class UnsupportedLanguageError(ValueError):
    pass


class ExecutionResult(BaseModel):
    test_case_id: Optional[str] = None
    passed: bool = False
    actual_output: Optional[str] = None
    expected_output: Optional[str] = None
    execution_time_ms: int = 0
    error: Optional[str] = None


def compare_outputs(actual: Any, expected: Any) -> bool:
    """Numbers match within a small tolerance, anything else as trimmed text."""
    actual_text = str(actual).strip()
    expected_text = str(expected).strip()
    try:
        return abs(float(actual_text) - float(expected_text)) < NUMERIC_TOLERANCE
    except ValueError:
        return actual_text == expected_text


def check_html_rules(code: str, rules: str) -> List[str]:
    """Apply ``;``-separated html rules to ``code``, returning the failures."""
    failures = []

    def has_tag(tag: str) -> bool:
        return re.search(rf"<{re.escape(tag)}[^>]*>", code, re.IGNORECASE) is not None

    for rule in (r.strip() for r in rules.split(";")):
        if not rule:
            continue

        if rule.startswith("contains:"):
            tag = rule[len("contains:"):]
            if not has_tag(tag):
                failures.append(f"Missing <{tag}> tag")

        elif rule.startswith("not-contains:"):
            tag = rule[len("not-contains:"):]
            if has_tag(tag):
                failures.append(f"Should not contain <{tag}> tag")

        elif rule.startswith("has-attribute:"):
            tag, _, attr = rule[len("has-attribute:"):].partition(":")
            pattern = rf"<{re.escape(tag)}[^>]*{re.escape(attr)}[^>]*>"
            if not re.search(pattern, code, re.IGNORECASE):
                failures.append(f"Missing {attr} attribute on <{tag}>")

        elif rule.startswith("count:"):
            tag, _, minimum = rule[len("count:"):].partition(":")
            found = len(re.findall(rf"<{re.escape(tag)}[^>]*>", code, re.IGNORECASE))
            if found < int(minimum or 1):
                failures.append(f"Expected at least {minimum} <{tag}> tags, found {found}")

        elif rule.startswith("attribute-value:"):
            tag, attr, expected = (rule[len("attribute-value:"):].split(":") + ["", ""])[:3]
            pattern = rf"<{re.escape(tag)}[^>]*{re.escape(attr)}\s*=\s*[\"']{re.escape(expected)}[\"'][^>]*>"
            if not re.search(pattern, code, re.IGNORECASE):
                failures.append(f'<{tag}> must have {attr}="{expected}"')

        elif rule.startswith("aria:"):
            attr = rule[len("aria:"):]
            if not re.search(rf"aria-{re.escape(attr)}", code, re.IGNORECASE):
                failures.append(f"Missing aria-{attr} attribute")

        elif rule == "valid-structure":
            if not re.search(r"<!DOCTYPE html>", code, re.IGNORECASE):
                failures.append("Missing DOCTYPE declaration")
            for tag in ("html", "head", "body"):
                if not has_tag(tag):
                    failures.append(f"Missing <{tag}> tag")

        elif rule == "semantic-html":
            missing = [tag for tag in SEMANTIC_TAGS if not has_tag(tag)]
            if missing:
                failures.append(f"Missing semantic elements: {', '.join(missing)}")

        else:
            logger.warning(f"Ignoring unknown html rule '{rule}'")

    return failures


class CodeExecutor:
    """Runs student code against a question's test cases."""

    INTERPRETERS = {
        "python": (PYTHON_BINARY, ".py"),
        "javascript": (NODE_BINARY, ".js"),
    }
    SUPPORTED_LANGUAGES = set(INTERPRETERS) | {"html"}

    async def run_test_cases(
        self,
        code: str,
        language: str,
        test_cases: List[Dict[str, Any]]
    ) -> List[ExecutionResult]:
        language = (language or "javascript").lower()
        if language not in self.SUPPORTED_LANGUAGES:
            raise UnsupportedLanguageError(f"Language '{language}' is not supported yet")

        results = []
        for index, test_case in enumerate(test_cases):
            result = await self.run_test_case(code, language, test_case)
            result.test_case_id = str(test_case.get("id", index))
            results.append(result)
        return results

    async def run_test_case(self, code: str, language: str, test_case: Dict[str, Any]) -> ExecutionResult:
        expected = str(test_case.get("expected_output", ""))

        if language == "html":
            started = time.monotonic()
            failures = check_html_rules(code, str(test_case.get("input", "")))
            passed = not failures
            return ExecutionResult(
                passed=passed,
                actual_output="HTML validation passed" if passed else f"Validation failed: {', '.join(failures)}",
                expected_output=expected,
                execution_time_ms=int((time.monotonic() - started) * 1000),
                error=None if passed else ", ".join(failures),
            )

        time_limit = float(test_case.get("time_limit") or CODE_EXECUTION_TIMEOUT)
        interpreter, suffix = self.INTERPRETERS[language]
        return await self._run_script(code, interpreter, suffix, str(test_case.get("input", "")), expected, time_limit)

    async def _run_script(
        self,
        code: str,
        interpreter: str,
        suffix: str,
        stdin: str,
        expected: str,
        time_limit: float
    ) -> ExecutionResult:
        with tempfile.TemporaryDirectory(prefix="lms_exec_") as sandbox:
            script = os.path.join(sandbox, f"solution{suffix}")
            with open(script, "w", encoding="utf-8") as handle:
                handle.write(code)

            started = time.monotonic()
            try:
                process = await asyncio.create_subprocess_exec(
                    interpreter, script,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=sandbox,
                )
            except OSError as e:
                logger.error(f"❌ Could not start {interpreter}: {e}")
                return ExecutionResult(expected_output=expected, error=str(e))

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(stdin.encode("utf-8")),
                    timeout=time_limit
                )
            except asyncio.TimeoutError:
                process.kill()
                await process.communicate()
                return ExecutionResult(
                    expected_output=expected,
                    execution_time_ms=int((time.monotonic() - started) * 1000),
                    error=f"Execution timeout after {time_limit:g}s",
                )

            elapsed = int((time.monotonic() - started) * 1000)
            output = stdout.decode("utf-8", errors="replace").strip()

            if process.returncode != 0:
                return ExecutionResult(
                    actual_output=output,
                    expected_output=expected,
                    execution_time_ms=elapsed,
                    error=stderr.decode("utf-8", errors="replace").strip()
                          or f"Process exited with code {process.returncode}",
                )

            return ExecutionResult(
                passed=compare_outputs(output, expected),
                actual_output=output,
                expected_output=expected,
                execution_time_ms=elapsed,
            )
