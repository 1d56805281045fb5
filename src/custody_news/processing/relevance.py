"""Relevance filter scoring feed items against the domain lexicons."""

from typing import Optional

from .lexicon import CONTEXT_LEXICON, DERANK_LEXICON, EXCLUSION_LEXICON, INCLUSION_LEXICON, Lexicon
from ..logger import get_logger


class RelevanceFilter:
    """
    Decides keep/drop for a candidate and assigns it a relevance score.

    Policy:
        1. Any exclusion match drops the item, whatever else matches.
        2. No inclusion match drops the item.
        3. With ``require_context`` on, no context match drops the item.
        4. Otherwise the score is a weighted count of inclusion and context
           matches, minus a penalty per de-rank match.
    """

    INCLUSION_WEIGHT = 1.0
    CONTEXT_WEIGHT = 2.0
    DERANK_PENALTY = 3.0

    def __init__(
        self,
        require_context: bool = True,
        inclusion: Lexicon = INCLUSION_LEXICON,
        exclusion: Lexicon = EXCLUSION_LEXICON,
        context: Lexicon = CONTEXT_LEXICON,
        derank: Lexicon = DERANK_LEXICON
    ):
        self.require_context = require_context
        self.inclusion = inclusion
        self.exclusion = exclusion
        self.context = context
        self.derank = derank
        self.logger = get_logger()

    @staticmethod
    def _text(title: str, summary: str) -> str:
        return f"{title or ''} {summary or ''}".lower()

    def score(self, title: str, summary: str) -> Optional[float]:
        """
        Score a candidate.

        Args:
            title: Item title
            summary: Item summary text

        Returns:
            Relevance score (higher = more relevant), or None to drop the item
        """
        text = self._text(title, summary)

        if self.exclusion.matches(text):
            self.logger.debug(
                f"Excluded by {self.exclusion.name} lexicon v{self.exclusion.version} "
                f"{self.exclusion.matched_terms(text)}: {title!r}"
            )
            return None

        inclusion_hits = self.inclusion.count(text)
        if inclusion_hits == 0:
            return None

        context_hits = self.context.count(text)
        if self.require_context and context_hits == 0:
            self.logger.debug(f"No domain context, dropped: {title!r}")
            return None

        derank_hits = self.derank.count(text)
        return (
            inclusion_hits * self.INCLUSION_WEIGHT +
            context_hits * self.CONTEXT_WEIGHT -
            derank_hits * self.DERANK_PENALTY
        )

    def is_relevant(self, title: str, summary: str) -> bool:
        return self.score(title, summary) is not None
