"""
Static policy applied to cell code before it is sent to the remote kernel.

Rules are checked in order and the first match wins. This is a text check, not
a sandbox: it only stops casual misuse before anything reaches the network.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern


class PolicyViolation(Exception):
    """Raised when cell code matches a blocked pattern."""

    def __init__(self, rule: "PolicyRule"):
        self.rule = rule
        self.message = rule.message
        super().__init__(rule.message)


@dataclass(frozen=True)
class PolicyRule:
    pattern: Pattern[str]
    message: str

    def matches(self, code: str) -> bool:
        return self.pattern.search(code) is not None


def _rule(regex: str, message: str) -> PolicyRule:
    return PolicyRule(re.compile(regex, re.IGNORECASE), message)


HEAVY_LIBRARIES = (
    "tensorflow", "tf", "torch", "keras", "jax", "mxnet", "paddle", "caffe",
    "theano", "cntk", "transformers", "diffusers", "ultralytics",
)

RULES: List[PolicyRule] = [
    _rule(r"(!|%)?pip3?\s+(install|download)", "pip install is not allowed."),
    _rule(r"(conda|apt-get|apt|brew|npm|yarn)\s+install", "System package installation is not allowed."),
    _rule(r"\b(import|from)\s+(" + "|".join(HEAVY_LIBRARIES) + r")\b", "Heavy DL libraries are not available."),
    _rule(r"__import__\s*\(", "__import__ is not allowed."),
    _rule(r"\bos\s*\.\s*system\s*\(", "os.system() is not allowed."),
    _rule(r"\bsubprocess\b", "subprocess is not allowed."),
]


def find_violation(code: str, rules: Optional[List[PolicyRule]] = None) -> Optional[PolicyRule]:
    for rule in RULES if rules is None else rules:
        if rule.matches(code or ""):
            return rule
    return None


def check_code(code: str) -> Optional[str]:
    """Return the message of the first rule the code breaks, or None."""
    rule = find_violation(code)
    return rule.message if rule else None


def enforce(code: str) -> None:
    rule = find_violation(code)
    if rule is not None:
        raise PolicyViolation(rule)
