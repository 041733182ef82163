#!/usr/bin/env python3
"""
Check that docs/test_scenarios_business_summary.md lists every scenario in
tests/test_integration_scenarios.py.

Missing entries are errors; documented scenarios that no longer exist are
warnings.

Run: python scripts/validate_test_docs_sync.py
"""

import re
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
TEST_FILE = PROJECT_ROOT / 'tests' / 'test_integration_scenarios.py'
DOC_FILE = PROJECT_ROOT / 'docs' / 'test_scenarios_business_summary.md'

CLASS_MARKER = re.compile(r'\*\*Test Class\*\*:\s*`(Test\w+)`')
METHOD_MARKER = re.compile(r'\*\*Test Method\*\*:\s*`(test_\w+)`')


def scenarios_in_tests(test_file: Path) -> dict[str, list[str]]:
    """Map each Test* class to its test_* methods, in file order."""
    scenarios = {}
    current = None
    for line in test_file.read_text().splitlines():
        class_match = re.match(r'^class (Test\w+)', line)
        if class_match:
            current = class_match.group(1)
            scenarios[current] = []
        elif current and (method_match := re.match(r'^\s+def (test_\w+)', line)):
            scenarios[current].append(method_match.group(1))
    return scenarios


def scenarios_in_doc(doc_file: Path) -> tuple[set[str], set[str]]:
    """Classes and methods named by the business summary markers."""
    content = doc_file.read_text()
    return set(CLASS_MARKER.findall(content)), set(METHOD_MARKER.findall(content))


def find_drift(test_file: Path, doc_file: Path) -> tuple[list[str], list[str]]:
    """Return (errors, warnings)."""
    scenarios = scenarios_in_tests(test_file)
    doc_classes, doc_methods = scenarios_in_doc(doc_file)
    methods = {m for ms in scenarios.values() for m in ms}

    errors = [f"Missing class documentation: {c}" for c in sorted(set(scenarios) - doc_classes)]
    errors += [f"Missing method documentation: {m}" for m in sorted(methods - doc_methods)]
    warnings = [f"Documented class no longer exists: {c}" for c in sorted(doc_classes - set(scenarios))]
    warnings += [f"Documented method no longer exists: {m}" for m in sorted(doc_methods - methods)]
    return errors, warnings


def main():
    for path in (TEST_FILE, DOC_FILE):
        if not path.exists():
            print(f"❌ Not found: {path}")
            sys.exit(1)

    errors, warnings = find_drift(TEST_FILE, DOC_FILE)
    scenarios = scenarios_in_tests(TEST_FILE)
    _, doc_methods = scenarios_in_doc(DOC_FILE)

    print(f"{TEST_FILE.name} <-> {DOC_FILE.name}")
    for cls, methods in scenarios.items():
        documented = sum(1 for m in methods if m in doc_methods)
        print(f"  {cls}: {documented}/{len(methods)} documented")

    for warning in warnings:
        print(f"⚠️  {warning}")
    for error in errors:
        print(f"❌ {error}")

    if not errors and not warnings:
        print("✅ All scenarios are documented and in sync!")

    sys.exit(1 if errors else 0)


if __name__ == '__main__':
    main()
