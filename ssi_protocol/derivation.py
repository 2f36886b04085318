"""
SSI Protocol v0.1 - Attribute Derivation

A requested attribute is one of a closed set of kinds: an age-threshold
check, a truncated identifier, or a verbatim pass-through of a claim.
Names are resolved against a fixed rule registry when a request is
created; anything not in the registry is a pass-through.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from .errors import UnsupportedAttribute


class AttributeKind(str, Enum):
    """Kinds of disclosure a holder can produce."""
    OVER_AGE = "over_age"
    LAST_CHARS = "last_chars"
    PASS_THROUGH = "pass_through"


@dataclass(frozen=True)
class RequestedAttribute:
    """
    A resolved attribute request.

    For derived kinds, source_claim names the claim the value is computed
    from and parameter is the age threshold or the suffix length.
    """
    name: str
    kind: AttributeKind
    source_claim: str
    parameter: Optional[int] = None

    @property
    def is_derived(self) -> bool:
        return self.kind != AttributeKind.PASS_THROUGH


AGE_THRESHOLD = 18
IDENTIFIER_SUFFIX_LENGTH = 4

DERIVATION_RULES: dict[str, RequestedAttribute] = {
    "over18": RequestedAttribute(
        name="over18",
        kind=AttributeKind.OVER_AGE,
        source_claim="dob",
        parameter=AGE_THRESHOLD,
    ),
    "panLast4": RequestedAttribute(
        name="panLast4",
        kind=AttributeKind.LAST_CHARS,
        source_claim="pan",
        parameter=IDENTIFIER_SUFFIX_LENGTH,
    ),
}


def resolve_attribute(name: str) -> RequestedAttribute:
    """Resolve an attribute name to its rule, or to a pass-through."""
    rule = DERIVATION_RULES.get(name)
    if rule is not None:
        return rule
    return RequestedAttribute(name=name, kind=AttributeKind.PASS_THROUGH, source_claim=name)


def resolve_attributes(names) -> list[RequestedAttribute]:
    return [resolve_attribute(name) for name in names]


def parse_date_of_birth(value: Any) -> date:
    """Parse a YYYY-MM-DD date. Raises ValueError on anything else."""
    if not isinstance(value, str):
        raise ValueError(f"Date of birth must be a string, got {type(value).__name__}")
    return datetime.strptime(value, "%Y-%m-%d").date()


def compute_age(dob: Union[str, date], today: date) -> int:
    """
    Whole calendar years elapsed from dob to today.

    The year difference is decremented when today's month/day precedes the
    birth month/day, so the age increments exactly on the anniversary.
    """
    if isinstance(dob, str):
        dob = parse_date_of_birth(dob)
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def last_chars(value: Any, count: int) -> str:
    """The last count characters of value; shorter values are returned whole."""
    text = str(value)
    return text[-count:] if len(text) > count else text


def can_satisfy(claims: dict, attribute: RequestedAttribute) -> bool:
    """
    Whether the source claim of an attribute is present.

    A pass-through needs the claim to exist, whatever its value; a derived
    attribute needs a non-null value to compute from.
    """
    if not attribute.is_derived:
        return attribute.source_claim in claims
    return claims.get(attribute.source_claim) is not None


def derive_attribute(claims: dict, attribute: RequestedAttribute, today: date) -> Any:
    """Compute one disclosed value, or raise UnsupportedAttribute."""
    if not can_satisfy(claims, attribute):
        raise UnsupportedAttribute(attribute.name)

    source = claims[attribute.source_claim]

    if attribute.kind == AttributeKind.OVER_AGE:
        try:
            return compute_age(source, today) >= attribute.parameter
        except ValueError as e:
            raise UnsupportedAttribute(attribute.name, str(e)) from e

    if attribute.kind == AttributeKind.LAST_CHARS:
        return last_chars(source, attribute.parameter)

    return source


def derive(claims: dict, attributes, today: date) -> dict:
    """
    Derive every requested attribute from a credential's claims.

    Aborts on the first attribute that cannot be derived; fields are never
    silently omitted.
    """
    disclosed = {}
    for attribute in attributes:
        if not isinstance(attribute, RequestedAttribute):
            attribute = resolve_attribute(attribute)
        disclosed[attribute.name] = derive_attribute(claims, attribute, today)
    return disclosed
