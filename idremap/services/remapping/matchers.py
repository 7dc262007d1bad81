"""
Matchers locating old identifiers inside one line of dump text.

Each matcher handles one surface syntax and rewrites only the identifier span,
leaving every other character of the line untouched. Identifiers missing from
the store are left as they are and counted as unmapped.
"""

import re
from abc import ABC, abstractmethod
from typing import List, NamedTuple

from idremap.services.remapping.settings import RemapSettings
from idremap.services.remapping.store import IdMappingStore

# &#38; is the numeric entity for "&"
QUERY_STRING_DELIMITER = r"(?:&amp;|&#38;|[?&])"
QUERY_STRING_ANY_KEY = r"[A-Za-z_][A-Za-z0-9_.\-]*"
ENTITY_NAME = r"[A-Za-z][A-Za-z0-9_]*"
DECIMAL = re.compile(r"[0-9]+")


class MatchResult(NamedTuple):
    line: str
    replaced: int
    unmapped: int
    # Unmapped tokens made of decimal digits only, which may be new ids
    numeric: int = 0


class Matcher(ABC):
    """
    Base matcher: ``pattern`` must define a group named ``id`` holding the
    identifier; everything else matched is preserved verbatim.
    """

    name = "matcher"

    def __init__(self, settings: RemapSettings):
        self.settings = settings
        self.pattern = re.compile(self.build_pattern(settings))

    @abstractmethod
    def build_pattern(self, settings: RemapSettings) -> str:
        pass

    def find_and_replace(
        self, line: str, store: IdMappingStore
    ) -> MatchResult:
        replaced = 0
        unmapped = 0
        numeric = 0

        def _replace(match):
            nonlocal replaced, unmapped, numeric
            old_id = match.group("id")
            new_id, found = store.lookup(old_id)
            if not found:
                if DECIMAL.fullmatch(old_id):
                    numeric += 1
                else:
                    unmapped += 1
                return match.group(0)
            replaced += 1
            start, end = match.span("id")
            offset = match.start(0)
            text = match.group(0)
            return f"{text[:start - offset]}{new_id}{text[end - offset:]}"

        new_line = self.pattern.sub(_replace, line)
        return MatchResult(new_line, replaced, unmapped, numeric)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.pattern.pattern!r}>"


class QuotedLiteralMatcher(Matcher):
    """``'a1b2c3d4e5f60718a'`` becomes ``'9001'``."""

    name = "quoted"

    def build_pattern(self, settings):
        return f"'(?P<id>{settings.identifier_pattern})'"


class EntityPathMatcher(Matcher):
    """``/#Account/view/a1b2c3d4e5f60718a`` becomes ``/#Account/view/9001``."""

    name = "path"

    def build_pattern(self, settings):
        actions = "|".join(re.escape(a) for a in settings.path_actions)
        return (
            f"(?<=[/#]){ENTITY_NAME}/(?:{actions})/"
            f"(?P<id>{settings.identifier_pattern})"
            f"(?![\\w{settings.identifier_alphabet}])"
        )


class QueryStringMatcher(Matcher):
    """``&amp;id=a1b2c3d4e5f60718a`` becomes ``&amp;id=9001``."""

    name = "query"

    def build_pattern(self, settings):
        if settings.query_string_parameters:
            keys = "|".join(
                re.escape(k) for k in settings.query_string_parameters
            )
        else:
            keys = QUERY_STRING_ANY_KEY
        return (
            f"{QUERY_STRING_DELIMITER}(?:{keys})="
            f"(?P<id>{settings.identifier_pattern})"
            f"(?![\\w{settings.identifier_alphabet}])"
        )


MATCHER_CLASSES = (QuotedLiteralMatcher, EntityPathMatcher, QueryStringMatcher)


def default_matchers(settings: RemapSettings) -> List[Matcher]:
    """Matchers in the order they must be applied to each line."""
    return [matcher_class(settings) for matcher_class in MATCHER_CLASSES]
