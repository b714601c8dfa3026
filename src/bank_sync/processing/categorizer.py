"""Keyword-based transaction categorizer."""

from collections import Counter
from typing import Iterable

from bank_sync.config import Config
from bank_sync.models.category import DEFAULT_CATEGORY, CategoryRule
from bank_sync.models.transaction import CanonicalTransaction
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class Categorizer:
    """Assigns a category to free text using ordered keyword rules.

    Rules are evaluated in table order and the first rule with a matching
    keyword wins, so the table order decides between overlapping keywords.
    Text that matches no rule gets the default category.
    """

    def __init__(self, rules: list[CategoryRule], default_category: str = DEFAULT_CATEGORY):
        """Initialize categorizer.

        Args:
            rules: Ordered category rules.
            default_category: Category for text that matches no rule.
        """
        self.rules = list(rules)
        self.default_category = default_category

    @classmethod
    def from_config(cls, config: Config) -> "Categorizer":
        return cls(config.category_rules, config.default_category)

    def categorize(self, text: str) -> str:
        """Categorize free text.

        Args:
            text: Description text (uncleaned provider text works best).

        Returns:
            Category name.
        """
        text_lower = (text or "").lower()
        if not text_lower:
            return self.default_category

        for rule in self.rules:
            keyword = rule.match(text_lower)
            if keyword is not None:
                logger.debug(f"Matched '{keyword}' -> {rule.category}")
                return rule.category

        return self.default_category

    def get_category_summary(
        self, transactions: Iterable[CanonicalTransaction]
    ) -> dict[str, int]:
        """Count transactions per category.

        Args:
            transactions: Transactions to summarize.

        Returns:
            Dict of category name to count, most common first.
        """
        counts = Counter(txn.category for txn in transactions)
        return dict(counts.most_common())
