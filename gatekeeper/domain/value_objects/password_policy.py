"""Password policy value objects."""

from dataclasses import dataclass
from enum import Enum


class PolicyRule(str, Enum):
    """Individual password rules."""

    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    DIGIT = "digit"
    SPECIAL = "special"
    REPEATED_CHARS = "repeated_chars"
    SAME_AS_CURRENT = "same_as_current"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PolicyViolation:
    """One violated password rule with a user-facing message."""

    rule: PolicyRule
    message: str

    def __str__(self) -> str:
        return self.message
