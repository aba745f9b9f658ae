"""Discovery, signal and strategy tag derivation."""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class TagType(str, Enum):
    """Kinds of candidate tags."""

    DISCOVERY = "discovery"  # where the product was found
    STRATEGY = "strategy"  # scoring profiles it qualifies for
    SIGNAL = "signal"  # business rules that fired
    MANUAL = "manual"  # operator overrides, e.g. "track"


@dataclass(frozen=True)
class Tag:
    tag_type: TagType
    tag_name: str

    def to_dict(self) -> dict:
        return {"tagType": self.tag_type.value, "tagName": self.tag_name}


# Scraper source name -> discovery tag name; unknown sources pass through
SOURCE_TAG_MAP: dict[str, str] = {
    "saleslist": "sales-rank",
    "newProducts": "new-products",
    "hotlist": "hot-list",
    "hotvideo": "hot-video",
    "shop-detail": "shop-detail",
}


def apply_discovery_tags(sources: Iterable[str]) -> list[Tag]:
    """Map source names to discovery tags, deduplicated in first-seen order."""
    seen: set[str] = set()
    tags: list[Tag] = []
    for source in sources:
        tag_name = SOURCE_TAG_MAP.get(source, source)
        if tag_name in seen:
            continue
        seen.add(tag_name)
        tags.append(Tag(TagType.DISCOVERY, tag_name))
    return tags


# ---------------------------------------------------------------------------
# Condition grammar: <field> <op> <value>
# ---------------------------------------------------------------------------

# Longest operators first so ">=" is never read as ">"
OPERATORS = (">=", "<=", "==", ">", "<")

Scalar = Union[str, float]


@dataclass(frozen=True)
class ParsedCondition:
    field: str
    operator: str
    value: Scalar


def _parse_literal(raw: str) -> Optional[Scalar]:
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    try:
        number = float(raw)
    except ValueError:
        return None
    if number != number:  # NaN
        return None
    return number


@lru_cache(maxsize=None)
def parse_condition(condition: str) -> Optional[ParsedCondition]:
    """
    Parse "salesGrowthRate > 1.0" into a ParsedCondition.

    Each operator is tried in priority order at its first occurrence; when
    the split leaves an empty side or an unparseable value the next operator
    is tried. Returns None when no operator yields a valid condition, and
    logs one warning per distinct condition string.
    """
    for op in OPERATORS:
        idx = condition.find(op)
        if idx == -1:
            continue

        field = condition[:idx].strip()
        raw_value = condition[idx + len(op):].strip()
        if not field or not raw_value:
            continue

        value = _parse_literal(raw_value)
        if value is None:
            continue

        return ParsedCondition(field=field, operator=op, value=value)

    logger.warning("Signal rule condition could not be parsed, rule skipped: %r", condition)
    return None


def evaluate_condition(actual: Any, operator: str, expected: Scalar) -> bool:
    """Compare a product value with a parsed literal. Mixed types never match."""
    if isinstance(expected, str):
        if not isinstance(actual, str):
            return False
    else:
        if isinstance(actual, bool) or not isinstance(actual, (int, float)):
            return False

    if operator == ">":
        return actual > expected
    if operator == "<":
        return actual < expected
    if operator == ">=":
        return actual >= expected
    if operator == "<=":
        return actual <= expected
    if operator == "==":
        return actual == expected
    return False


def _rule_items(signal_rules: Any) -> Iterable[tuple[str, str]]:
    rules = getattr(signal_rules, "signal_rules", signal_rules)
    for name, rule in rules.items():
        if isinstance(rule, Mapping):
            yield name, rule["condition"]
        elif isinstance(rule, str):
            yield name, rule
        else:
            yield name, rule.condition


def apply_signal_tags(product_data: Mapping[str, Any], signal_rules: Any) -> list[Tag]:
    """
    Evaluate signal rules against a flat product record.

    Args:
        product_data: Field name -> scalar value
        signal_rules: SignalsConfig, or {rule_name: {"condition": "..."}}

    Returns:
        One signal tag per matching rule, in rule declaration order. Rules
        whose field is missing (or None) and rules that fail to parse are
        skipped.
    """
    tags: list[Tag] = []
    for rule_name, condition in _rule_items(signal_rules):
        parsed = parse_condition(condition)
        if parsed is None:
            continue

        actual = product_data.get(parsed.field)
        if actual is None:
            continue

        if evaluate_condition(actual, parsed.operator, parsed.value):
            tags.append(Tag(TagType.SIGNAL, rule_name))
    return tags


_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def to_kebab_case(name: str) -> str:
    """Convert a camelCase profile name to kebab-case (blueOcean -> blue-ocean).

    Names already in kebab-case are returned unchanged.
    """
    return _CAMEL_BOUNDARY.sub(r"\1-\2", name).lower()


def apply_strategy_tags(scores: Mapping[str, Optional[float]], threshold: float) -> list[Tag]:
    """Emit a strategy tag for each profile scoring at or above the threshold."""
    tags: list[Tag] = []
    for profile, score in scores.items():
        if score is None:
            continue
        if score >= threshold:
            tags.append(Tag(TagType.STRATEGY, to_kebab_case(profile)))
    return tags
