"""
pytest configuration for dns-policy-tester tests

This file ensures tests can find the dns_policy_tester package and the shared
helpers in test_utils regardless of environment
"""

import sys
from pathlib import Path

# Add parent directory to path so tests can import dns_policy_tester
repo_root = Path(__file__).parent.parent
tests_dir = Path(__file__).parent
for path in (repo_root, tests_dir):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that wire several components together")
