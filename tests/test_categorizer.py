"""Tests for keyword categorization."""

from decimal import Decimal

import pytest

from bank_sync.config import Config, load_default_categories
from bank_sync.models.category import CategoryRule, MatchMode
from bank_sync.models.transaction import CanonicalTransaction, TransactionType
from bank_sync.processing.categorizer import Categorizer


@pytest.fixture
def default_categorizer() -> Categorizer:
    rules, default_category = load_default_categories()
    return Categorizer(rules, default_category)


class TestPackagedTable:
    """Tests against the packaged Italian keyword table."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("POS ESSELUNGA MILANO 00123456789 01/03/2026", "Spesa"),
            ("PAGAMENTO POS PIZZERIA DA GINO", "Ristorazione"),
            ("TRENITALIA BIGLIETTO", "Trasporti"),
            ("ADDEBITO SDD NETFLIX.COM", "Abbonamenti"),
            ("ZALANDO SE BERLIN", "Shopping"),
            ("ACCREDITO STIPENDIO MARZO", "Lavoro"),
            ("AFFITTO APPARTAMENTO", "Casa"),
            ("FARMACIA COMUNALE", "Salute"),
            ("PAYPAL EUROPE S.A.R.L.", "Finanza"),
            ("CORSO DI INGLESE", "Istruzione"),
        ],
    )
    def test_known_merchants(
        self, default_categorizer: Categorizer, text: str, expected: str
    ) -> None:
        """Test typical statement lines map to their category."""
        assert default_categorizer.categorize(text) == expected

    def test_table_order_breaks_ties(self, default_categorizer: Categorizer) -> None:
        """Test the earlier category wins when keywords overlap."""
        # "atm" is listed under Trasporti and Finanza
        assert default_categorizer.categorize("PRELIEVO ATM") == "Trasporti"
        # "amazon prime" (Abbonamenti) precedes "amazon" (Shopping)
        assert default_categorizer.categorize("AMAZON PRIME IT") == "Abbonamenti"

    def test_trailing_space_keywords(self, default_categorizer: Categorizer) -> None:
        """Test quoted keywords keep their trailing space."""
        assert default_categorizer.categorize("BAR CENTRALE") == "Ristorazione"
        assert default_categorizer.categorize("BARBIERE") == "Other"

    def test_no_match_returns_default(self, default_categorizer: Categorizer) -> None:
        """Test unmatched and empty text get the default category."""
        assert default_categorizer.categorize("XYZ QWERTY") == "Other"
        assert default_categorizer.categorize("") == "Other"

    def test_deterministic(self, default_categorizer: Categorizer) -> None:
        """Test repeated calls give the same answer."""
        text = "SDD CORE ENEL ENERGIA"
        assert {default_categorizer.categorize(text) for _ in range(5)} == {"Casa"}


class TestCategorizer:
    """Tests for Categorizer with custom rules."""

    def test_case_insensitive(self) -> None:
        """Test keywords match regardless of case."""
        categorizer = Categorizer([CategoryRule("Food", ["Pizza"])])
        assert categorizer.categorize("PIZZA EXPRESS") == "Food"

    def test_word_boundary_mode(self) -> None:
        """Test whole-word rules ignore keywords inside other words."""
        categorizer = Categorizer(
            [CategoryRule("Fuel", ["eni"], match_mode=MatchMode.WORD_BOUNDARY)],
            default_category="Misc",
        )
        assert categorizer.categorize("ENI STATION 42") == "Fuel"
        assert categorizer.categorize("GENIALE SRL") == "Misc"

    def test_from_config(self) -> None:
        """Test construction from configuration."""
        config = Config(category_rules=[CategoryRule("A", ["alpha"])], default_category="Z")
        categorizer = Categorizer.from_config(config)
        assert categorizer.categorize("alpha") == "A"
        assert categorizer.categorize("beta") == "Z"

    def test_category_summary(self) -> None:
        """Test transactions are counted per category, most common first."""

        def txn(category: str) -> CanonicalTransaction:
            return CanonicalTransaction(
                title="t",
                date="2026-01-01",
                amount=Decimal("-1"),
                transaction_type=TransactionType.EXPENSE,
                category=category,
            )

        summary = Categorizer([]).get_category_summary(
            [txn("Spesa"), txn("Casa"), txn("Spesa")]
        )

        assert summary == {"Spesa": 2, "Casa": 1}
        assert list(summary) == ["Spesa", "Casa"]
