"""Keyword rule compilation and matching.

A rule string such as ``出,收,促销+低价`` compiles to the groups
``[["出"], ["收"], ["促销", "低价"]]``: commas separate alternatives (OR) and
``+`` joins terms that must all appear (AND).
"""

from .config import Config
from .models import FeedItem, KeywordRule

GROUP_SEPARATOR = ","
TERM_SEPARATOR = "+"


def compile_rule(rule: str | None) -> KeywordRule:
    """Compile a rule string into a KeywordRule."""
    if not rule:
        return KeywordRule()

    groups = []
    for raw_group in rule.split(GROUP_SEPARATOR):
        raw_group = raw_group.strip()
        if not raw_group:
            continue
        # dict.fromkeys keeps first-seen order while dropping repeats
        terms = dict.fromkeys(
            term.strip().lower()
            for term in raw_group.split(TERM_SEPARATOR)
            if term.strip()
        )
        if terms:
            groups.append(tuple(terms))

    return KeywordRule(groups=tuple(groups))


def match_text(item: FeedItem) -> str:
    return f"{item.title} {item.description}".lower()


def matches(rule: KeywordRule, item: FeedItem) -> bool:
    """True if every term of at least one group occurs in title + description."""
    text = match_text(item)
    return any(all(term in text for term in group) for group in rule.groups)


def keyword_filter_passes(config: Config, rule: KeywordRule, item: FeedItem) -> bool:
    """Apply the keyword filter; disabled filters and empty rules let everything through."""
    if not config.enable_keyword or not rule:
        return True
    return matches(rule, item)
