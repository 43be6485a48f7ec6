"""Auto-reply domain exceptions."""

from src.shared.exceptions import DomainError, NotFoundError


class RuleCompilationError(DomainError):
    """A regex trigger that does not compile. Logged; the rule is skipped."""

    code = "rule_compilation_error"
    status_code = 422


class RuleNotFoundError(NotFoundError):
    code = "rule_not_found"
