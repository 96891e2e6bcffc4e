# dns_policy_tester/errors.py
"""Exception types shared by the policy tester"""


class ResolutionFailure(Exception):
    """A single lookup failed or timed out"""

    def __init__(self, domain: str, reason: str):
        self.domain = domain
        self.reason = reason
        super().__init__(f"Resolution of {domain} failed: {reason}")


class TestCancelled(Exception):
    """Raised inside a policy procedure when its cancellation token is set"""

    __test__ = False  # not a pytest test class


class ConfigurationError(Exception):
    """Configuration error with helpful message"""

    def __init__(self, message: str, suggestion: str = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)
