"""Category keyword rule data models."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

# Category assigned when no rule matches
DEFAULT_CATEGORY = "Other"


class MatchMode(Enum):
    """Matching mode for keywords in categorization rules."""

    SUBSTRING = "substring"  # Default: "eni" matches "eni gas" and "geniale"
    WORD_BOUNDARY = "word"  # "eni" only matches as whole word


@dataclass
class CategoryRule:
    """Keyword list for one category.

    Keyword matching is case-insensitive. Rules are evaluated in table
    order and the first rule with a matching keyword wins.

    Attributes:
        category: Category name to assign when the rule matches.
        keywords: Keywords matched against the lowercased text.
        match_mode: How keywords are matched (substring or word boundary).
    """

    category: str
    keywords: list[str] = field(default_factory=list)
    match_mode: MatchMode = MatchMode.SUBSTRING

    # Compiled word-boundary patterns (cached)
    _word_patterns: list[re.Pattern[str]] = field(
        default_factory=list, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        """Lowercase keywords and compile word-boundary patterns."""
        # Keywords may carry meaningful surrounding spaces ("bar ", "ip ")
        self.keywords = [kw.lower() for kw in self.keywords if kw and kw.strip()]
        if not self.keywords:
            logger.warning(f"Category '{self.category}' has no keywords and will match nothing")

        self._word_patterns = []
        if self.match_mode == MatchMode.WORD_BOUNDARY:
            self._word_patterns = [
                re.compile(r"\b" + re.escape(kw.strip()) + r"\b") for kw in self.keywords
            ]

    def match(self, text_lower: str) -> Optional[str]:
        """Find the first keyword of this rule present in the text.

        Args:
            text_lower: Already-lowercased text to search.

        Returns:
            The matching keyword, or None.
        """
        if self.match_mode == MatchMode.WORD_BOUNDARY:
            for kw, pattern in zip(self.keywords, self._word_patterns):
                if pattern.search(text_lower):
                    return kw
            return None

        for kw in self.keywords:
            if kw in text_lower:
                return kw
        return None

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "CategoryRule":
        """Create a CategoryRule from a dictionary (e.g., from YAML config).

        Args:
            data: Dictionary with ``name``, ``keywords`` and optional ``match_mode``.

        Returns:
            A new CategoryRule instance.
        """
        match_mode = MatchMode.SUBSTRING
        if "match_mode" in data:
            mode_str = str(data["match_mode"]).lower()
            if mode_str == "word":
                match_mode = MatchMode.WORD_BOUNDARY

        keywords = data.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [keywords]

        return cls(
            category=str(data["name"]),
            keywords=[str(kw) for kw in keywords],  # type: ignore[union-attr]
            match_mode=match_mode,
        )

    def __repr__(self) -> str:
        return f"CategoryRule(category={self.category!r}, keywords={len(self.keywords)})"
