# scraper/extractors.py
import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import NamedTuple, Optional

ELLIPSIS = "..."
CENTS = Decimal("0.01")
RATING_PREFIX = "star-rating"


def extract_text(node, selector) -> Optional[str]:
    el = node.select_one(selector)
    if el is None:
        return None
    return el.get_text(strip=True)


def extract_attr(node, selector, attr) -> Optional[str]:
    el = node.select_one(selector)
    if el is None:
        return None
    return el.get(attr)


def extract_rating(node, selector, prefix=RATING_PREFIX) -> Optional[str]:
    """
    Read the rating word out of a class list such as "star-rating Three".

    Whatever is left after dropping the prefix token is returned verbatim, so
    a new rating vocabulary on the site passes straight through.
    """
    el = node.select_one(selector)
    if el is None:
        return None
    classes = el.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    rest = " ".join(c for c in classes if c != prefix).strip()
    return rest or None


def parse_price(text) -> Optional[Decimal]:
    """
    Parse a currency string ("£51.77") into a Decimal with 2 fraction digits.

    Every character that is not a digit or "." is dropped first. Leftovers
    that are still not a number ("1.2.3", ".") give None instead of raising.
    """
    if not text:
        return None
    m = re.sub(r"[^0-9\.]", "", text)
    if not m:
        return None
    try:
        return Decimal(m).quantize(CENTS)
    except InvalidOperation:
        return None


def extract_price(node, selector) -> Optional[Decimal]:
    return parse_price(extract_text(node, selector))


def parse_int(text) -> Optional[int]:
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def extract_tags(node, selector):
    return [el.get_text(strip=True) for el in node.select(selector)]


def truncate(text, max_length):
    """
    Cap text at max_length characters.

    Longer text keeps its first max_length - 3 characters followed by "...".
    When max_length leaves no room for the marker (3 or less) the text is cut
    without one.
    """
    if text is None or len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return text[: max(max_length, 0)]
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def table_value(node, label) -> Optional[str]:
    """
    Look up the value cell of a two-column label/value table.

    An exact label match wins over a row whose label merely contains it.
    """
    contains = None
    for tr in node.select("tr"):
        cells = tr.find_all(["th", "td"])
        if len(cells) < 2:
            continue
        key = cells[0].get_text(strip=True)
        if key == label:
            return cells[1].get_text(strip=True)
        if contains is None and label in key:
            contains = cells[1].get_text(strip=True)
    return contains


class Kind(str, Enum):
    TEXT = "text"
    ATTR = "attr"
    RATING = "rating"
    PRICE = "price"
    TAGS = "tags"


class FieldRule(NamedTuple):
    kind: Kind
    selector: str
    attr: Optional[str] = None


_DISPATCH = {
    Kind.TEXT: lambda node, rule: extract_text(node, rule.selector),
    Kind.ATTR: lambda node, rule: extract_attr(node, rule.selector, rule.attr),
    Kind.RATING: lambda node, rule: extract_rating(node, rule.selector),
    Kind.PRICE: lambda node, rule: extract_price(node, rule.selector),
    Kind.TAGS: lambda node, rule: extract_tags(node, rule.selector),
}


def apply_rule(node, rule):
    return _DISPATCH[rule.kind](node, rule)


def apply_rules(node, rules):
    """Run a {field: FieldRule} table over one node and return {field: value}."""
    return {field: apply_rule(node, rule) for field, rule in rules.items()}
