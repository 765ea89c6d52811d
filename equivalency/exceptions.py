"""Custom exceptions for the equivalency engine."""


class EquivalencyError(Exception):
    """Base exception for equivalency errors."""
    pass


class ConfigurationError(EquivalencyError):
    """Raised when equivalency options are invalid."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MemberSelectorError(ConfigurationError):
    """Raised when a member selector does not select a member."""
    def __init__(self, message: str, selector=None):
        super().__init__(message, {"selector": repr(selector)})
        self.selector = selector


class NoComparableMembersError(ConfigurationError):
    """Raised when two complex objects have no members to compare."""
    def __init__(self, path: str, subject_type: type, expectation_type: type):
        location = f"member {path}" if path else "subject"
        super().__init__(
            f"No members were found for comparison of {location}: the objects of type "
            f"{subject_type.__name__} and {expectation_type.__name__} have no members to compare. "
            f"Use comparing_by_value() to compare them with ==.",
            {
                "path": path,
                "subject_type": subject_type.__name__,
                "expectation_type": expectation_type.__name__,
            },
        )
        self.path = path
        self.subject_type = subject_type
        self.expectation_type = expectation_type


class EquivalencyAssertionError(AssertionError):
    """Raised by assert_equivalent when the objects are not equivalent."""
    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.message = message
        self.report = report

    @property
    def discrepancies(self) -> list:
        return list(self.report.discrepancies) if self.report else []
