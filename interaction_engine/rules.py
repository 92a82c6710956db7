"""Field-level validation rules (email, phone, url, password, credit card)."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Mapping
import re

from .errors import UnknownValidationType

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[+]?[1-9][0-9]{0,15}$")
URL_PATTERN = re.compile(
    r"^https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b([-a-zA-Z0-9()@:%_+.~#?&/=]*)$",
    re.ASCII,
)
_WHITESPACE = re.compile(r"\s+")
_NON_DIGITS = re.compile(r"[^0-9]")


@dataclass(frozen=True)
class PasswordPolicy:
    """Structured password requirements; special characters are tracked, not required."""

    min_length: int = 8
    uppercase: re.Pattern[str] = re.compile(r"[A-Z]")
    lowercase: re.Pattern[str] = re.compile(r"[a-z]")
    numbers: re.Pattern[str] = re.compile(r"[0-9]")
    special_chars: re.Pattern[str] = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")

    def evaluate(self, value: str) -> dict[str, bool]:
        return {
            "length": len(value) >= self.min_length,
            "uppercase": bool(self.uppercase.search(value)),
            "lowercase": bool(self.lowercase.search(value)),
            "numbers": bool(self.numbers.search(value)),
            "special_chars": bool(self.special_chars.search(value)),
        }


PASSWORD_SUGGESTIONS: tuple[tuple[str, str], ...] = (
    ("length", "Use at least 8 characters"),
    ("uppercase", "Include uppercase letters"),
    ("lowercase", "Include lowercase letters"),
    ("numbers", "Include numbers"),
    ("special_chars", "Consider adding special characters for extra security"),
)


@dataclass(frozen=True)
class RuleOutcome:
    is_valid: bool
    details: Mapping[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationRule:
    """A registered validator: predicate, message and the field types it applies to."""

    id: str
    message: str
    test: Callable[[str], RuleOutcome]
    field_types: tuple[str, ...] = ()
    requirements: PasswordPolicy | None = None


def _pattern_rule(pattern: re.Pattern[str], *, strip_whitespace: bool = False) -> Callable[[str], RuleOutcome]:
    def test(value: str) -> RuleOutcome:
        candidate = _WHITESPACE.sub("", value) if strip_whitespace else value
        return RuleOutcome(is_valid=pattern.search(candidate) is not None)

    return test


def luhn_valid(value: str) -> bool:
    """Luhn checksum over the digits of ``value``; 13 to 19 digits required."""

    digits = _NON_DIGITS.sub("", value)
    if len(digits) < 13 or len(digits) > 19:
        return False

    total = 0
    double = False
    for char in reversed(digits):
        digit = int(char)
        if double:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
        double = not double
    return total % 10 == 0


def password_suggestions(details: Mapping[str, bool]) -> list[str]:
    return [text for key, text in PASSWORD_SUGGESTIONS if not details.get(key, False)]


def _password_rule(policy: PasswordPolicy) -> Callable[[str], RuleOutcome]:
    def test(value: str) -> RuleOutcome:
        details = policy.evaluate(value)
        is_valid = details["length"] and details["uppercase"] and details["lowercase"] and details["numbers"]
        return RuleOutcome(is_valid=is_valid, details=details)

    return test


class ValidationRuleSet:
    """Immutable registry of validation rules, built once and shared read-only."""

    def __init__(self, rules: Iterable[ValidationRule]) -> None:
        by_id: dict[str, ValidationRule] = {}
        by_type: dict[str, ValidationRule] = {}
        for rule in rules:
            if rule.id in by_id:
                raise ValueError(f"Duplicate validation rule: {rule.id}")
            by_id[rule.id] = rule
            for field_type in rule.field_types:
                by_type[field_type] = rule
        self._rules = MappingProxyType(by_id)
        self._by_type = MappingProxyType(by_type)

    @classmethod
    def default(cls) -> "ValidationRuleSet":
        policy = PasswordPolicy()
        return cls(
            [
                ValidationRule(
                    id="email",
                    message="Please enter a valid email address",
                    test=_pattern_rule(EMAIL_PATTERN),
                    field_types=("email",),
                ),
                ValidationRule(
                    id="phone",
                    message="Please enter a valid phone number",
                    test=_pattern_rule(PHONE_PATTERN, strip_whitespace=True),
                    field_types=("tel", "phone"),
                ),
                ValidationRule(
                    id="url",
                    message="Please enter a valid URL",
                    test=_pattern_rule(URL_PATTERN),
                    field_types=("url",),
                ),
                ValidationRule(
                    id="password",
                    message="Password must be at least 8 characters with uppercase, lowercase, and numbers",
                    test=_password_rule(policy),
                    field_types=("password",),
                    requirements=policy,
                ),
                ValidationRule(
                    id="credit_card",
                    message="Please enter a valid credit card number",
                    test=lambda value: RuleOutcome(is_valid=luhn_valid(value)),
                ),
            ]
        )

    @property
    def rules(self) -> Mapping[str, ValidationRule]:
        return self._rules

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def get(self, rule_id: str) -> ValidationRule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise UnknownValidationType(rule_id) from None

    def for_field_type(self, field_type: str) -> ValidationRule | None:
        return self._by_type.get(field_type.lower())

    def check(self, rule_id: str, value: str) -> RuleOutcome:
        return self.get(rule_id).test(value)
