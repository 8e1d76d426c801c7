"""Name inflection used to derive class names and keys from association names.

Covers the English plural forms association names realistically use.
"""

from __future__ import annotations

import re
from functools import lru_cache

_UNCOUNTABLE = frozenset(
    {"equipment", "information", "rice", "money", "species", "series", "fish", "sheep", "news"}
)

_IRREGULAR_SINGULARS = {
    "people": "person",
    "men": "man",
    "women": "woman",
    "children": "child",
    "teeth": "tooth",
    "feet": "foot",
    "mice": "mouse",
    "geese": "goose",
}

# Applied in order, first match wins
_SINGULAR_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(database)s$"), r"\1"),
    (re.compile(r"(quiz)zes$"), r"\1"),
    (re.compile(r"(matr)ices$"), r"\1ix"),
    (re.compile(r"(vert|ind)ices$"), r"\1ex"),
    (re.compile(r"^(ox)en"), r"\1"),
    (re.compile(r"(alias|status)(es)?$"), r"\1"),
    (re.compile(r"(octop|vir)(us|i)$"), r"\1us"),
    (re.compile(r"^(a)x[ie]s$"), r"\1xis"),
    (re.compile(r"(cris|test)(is|es)$"), r"\1is"),
    (re.compile(r"(shoe)s$"), r"\1"),
    (re.compile(r"(o)es$"), r"\1"),
    (re.compile(r"(bus)(es)?$"), r"\1"),
    (re.compile(r"(x|ch|ss|sh)es$"), r"\1"),
    (re.compile(r"(m)ovies$"), r"\1ovie"),
    (re.compile(r"(s)eries$"), r"\1eries"),
    (re.compile(r"([^aeiouy]|qu)ies$"), r"\1y"),
    (re.compile(r"([lr])ves$"), r"\1f"),
    (re.compile(r"(tive)s$"), r"\1"),
    (re.compile(r"(hive)s$"), r"\1"),
    (re.compile(r"([^f])ves$"), r"\1fe"),
    (re.compile(r"(analy|ba|diagno|parenthe|progno|synop|the)(sis|ses)$"), r"\1sis"),
    (re.compile(r"([ti])a$"), r"\1um"),
    (re.compile(r"(n)ews$"), r"\1ews"),
    (re.compile(r"(ss)$"), r"\1"),
    (re.compile(r"s$"), ""),
]


@lru_cache(maxsize=512)
def singularize(word: str) -> str:
    """Return the singular form of an English word ("tickets" -> "ticket")."""
    # Only the last underscore-separated segment is inflected
    head, _, last = word.rpartition("_")
    lower = last.lower()
    if lower in _UNCOUNTABLE:
        return word
    if lower in _IRREGULAR_SINGULARS:
        singular = _IRREGULAR_SINGULARS[lower]
    else:
        singular = last
        for pattern, replacement in _SINGULAR_RULES:
            if pattern.search(last):
                singular = pattern.sub(replacement, last)
                break
    return f"{head}_{singular}" if head else singular


def camelize(word: str) -> str:
    """Convert an underscored name to CamelCase ("line_item" -> "LineItem")."""
    return "".join(part[:1].upper() + part[1:] for part in word.split("_") if part)


def underscore(word: str) -> str:
    """Convert a CamelCase name to underscored form ("LineItem" -> "line_item")."""
    word = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", word)
    word = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", word)
    return word.replace("-", "_").lower()


def demodulize(path: str) -> str:
    """Strip the namespace from a dotted name ("shop.OrderForm" -> "OrderForm")."""
    return path.rpartition(".")[2]
