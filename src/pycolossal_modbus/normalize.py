"""Tag-reference grammar: validate channel names and extract references from expressions."""

import re

from .errors import EvaluationError

TAG_PREFIX = "MB"

# Protocol prefix + one or more digits, delimited on both sides by anything that
# cannot continue an identifier or a number. MB1 never matches inside MB12 or XMB1.
_REFERENCE_PATTERN = re.compile(r"(?<![A-Za-z0-9_.])MB[0-9]+(?![A-Za-z0-9_.])")

_NAME_PATTERN = re.compile(r"^MB[0-9]+$")


def is_tag_name(name: str) -> bool:
    """True if a channel name can be referenced from a calculation expression."""
    return bool(_NAME_PATTERN.match(name))


def find_references(expression: str) -> list[str]:
    """
    Return the distinct tag references in an expression, in first-occurrence order.

    Leading zeros are significant: MB01 and MB1 are different references.
    """
    seen: dict[str, None] = {}
    for m in _REFERENCE_PATTERN.finditer(expression):
        seen.setdefault(m.group(0), None)
    return list(seen)


def substitute_references(expression: str, literals: dict[str, str]) -> str:
    """Replace every reference token with its literal; each token is replaced whole."""

    def _replace(m: re.Match[str]) -> str:
        ref = m.group(0)
        try:
            return literals[ref]
        except KeyError:
            raise EvaluationError(f"No literal for reference {ref!r}", expression=expression) from None

    return _REFERENCE_PATTERN.sub(_replace, expression)
