"""Named, versioned lexicons used to classify feed items.

Each lexicon is a set of regular expressions matched case-insensitively
against lowercased text. Bump ``version`` whenever the term list changes so
published output can be traced back to the vocabulary that produced it.
"""

import re
from dataclasses import dataclass, field
from typing import Tuple

from ..models import (
    CATEGORY_PROJECTS,
    CATEGORY_RESEARCH,
    CATEGORY_STANDARDS,
    CATEGORY_TECHNOLOGY,
)


@dataclass(frozen=True)
class Lexicon:
    """A curated set of keyword/phrase patterns."""
    name: str
    version: str
    patterns: Tuple[str, ...]
    _compiled: Tuple[re.Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        compiled = tuple(re.compile(p, re.IGNORECASE) for p in self.patterns)
        object.__setattr__(self, '_compiled', compiled)

    def matches(self, text: str) -> bool:
        """True when any pattern occurs in the text."""
        return any(p.search(text) for p in self._compiled)

    def count(self, text: str) -> int:
        """Number of distinct patterns that occur in the text."""
        return sum(1 for p in self._compiled if p.search(text))

    def matched_terms(self, text: str) -> Tuple[str, ...]:
        return tuple(p.pattern for p in self._compiled if p.search(text))


# Measurement instruments, proving and calibration procedures, named standards
INCLUSION_LEXICON = Lexicon(
    name="inclusion",
    version="3",
    patterns=(
        r"\bflow ?meters?\b",
        r"\bflowmeters?\b",
        r"\bmeter(?:s|ing)?\b",
        r"\bprovers?\b",
        r"\bmeter proving\b",
        r"\bpipe provers?\b",
        r"\blact\b",
        r"\blease automatic custody transfer\b",
        r"\bmetering (?:skid|station)s?\b",
        r"\bultrasonic (?:meter|measurement)",
        r"\bcoriolis (?:meter|measurement)",
        r"\bcalibration lab",
        r"\bmetrology\b",
    ),
)

# Homonym domains: financial custody, legal custody, securities
EXCLUSION_LEXICON = Lexicon(
    name="exclusion",
    version="3",
    patterns=(
        r"\betfs?\b",
        r"\bcrypto\w*",
        r"\bbitcoin\b",
        r"\btokens?\b",
        r"\bsecurit(?:y|ies)\b",
        r"\bcustody bank",
        r"\bcustodian bank",
        r"\basset management\b",
        r"\bchild custody\b",
        r"\bpolice custody\b",
        r"\bdetention\b",
        r"\bcrime\b",
    ),
)

# Explicit domain context for oil, gas and LNG fiscal measurement
CONTEXT_LEXICON = Lexicon(
    name="context",
    version="3",
    patterns=(
        r"\bcustody transfer\b",
        r"\bfiscal\b",
        r"\bmpms\b",
        r"\boiml\b",
        r"\br-?117\b",
        r"\biso\s*17025\b",
        r"\blng\b",
        r"\boil\b",
        r"\bgas\b",
        r"\bterminal\b",
        r"\bpipelines?\b",
    ),
)

# Adjacent but unwanted metering domains: sorted lower, not dropped
DERANK_LEXICON = Lexicon(
    name="derank",
    version="1",
    patterns=(
        r"\bsmart meters?\b",
        r"\bwater meters?\b",
        r"\belectricity meters?\b",
        r"\bprepaid meters?\b",
        r"\bparking meters?\b",
        r"\butility bills?\b",
        r"\bhousehold\b",
    ),
)

# Title keyword groups for category assignment; order matters, first match wins
CATEGORY_GROUPS: Tuple[Tuple[str, Lexicon], ...] = (
    (CATEGORY_STANDARDS, Lexicon(
        name="category-standards",
        version="1",
        patterns=(r"\bmpms\b", r"\boiml\b", r"r-117", r"\biso\s*17025\b"),
    )),
    (CATEGORY_TECHNOLOGY, Lexicon(
        name="category-technology",
        version="1",
        patterns=(r"\bprover\b", r"\blact\b", r"\bultrasonic\b", r"\bcoriolis\b",
                  r"\bflowmeter\b", r"\bmetering skid\b"),
    )),
    (CATEGORY_PROJECTS, Lexicon(
        name="category-projects",
        version="1",
        patterns=(r"\bcontract\b", r"\bawarded\b", r"\bterminal\b", r"\bproject\b",
                  r"\btender\b"),
    )),
    (CATEGORY_RESEARCH, Lexicon(
        name="category-research",
        version="1",
        patterns=(r"\bcalibration\b", r"\bmetrology\b", r"\blab\b"),
    )),
)
