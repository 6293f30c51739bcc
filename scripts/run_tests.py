#!/usr/bin/env python
"""
Test runner for yaru.

Usage:
    python scripts/run_tests.py            # whole suite
    python scripts/run_tests.py storage    # tests/test_storage.py
    python scripts/run_tests.py daemon     # everything under tests/daemon/
"""

import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def resolve_target(name: str) -> str:
    """Map a short name to a test file or directory under tests/."""
    tests_dir = PROJECT_ROOT / "tests"
    if (tests_dir / name).is_dir():
        return f"tests/{name}"

    module = name if name.startswith("test_") else f"test_{name}"
    if not module.endswith(".py"):
        module = f"{module}.py"
    matches = sorted(tests_dir.rglob(module))
    if matches:
        return str(matches[0].relative_to(PROJECT_ROOT))
    return f"tests/{module}"


def run_tests(target: str = "tests/", verbose: bool = True) -> bool:
    cmd = [sys.executable, "-m", "pytest", target, "--tb=short"]
    if verbose:
        cmd.append("-v")

    print(f"Running: {' '.join(cmd)}")
    print("=" * 60)

    try:
        result = subprocess.run(cmd, cwd=PROJECT_ROOT, check=False)
        return result.returncode == 0
    except FileNotFoundError:
        print("Error: pytest not found. Install with: pip install -e '.[test]'")
        return False


def main():
    target = resolve_target(sys.argv[1]) if len(sys.argv) > 1 else "tests/"
    if not run_tests(target):
        print("\nSome tests failed!")
        sys.exit(1)
    print("\nAll tests passed!")


if __name__ == "__main__":
    main()
