"""Supported-bank catalog."""

from bank_sync.models.requisition import Institution
from bank_sync.provider.client import AggregatorClient
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class InstitutionCatalog:
    """Lists the institutions the aggregator supports for a country."""

    def __init__(self, client: AggregatorClient):
        self.client = client

    async def list_institutions(self, country_code: str) -> list[Institution]:
        """List supported institutions.

        Args:
            country_code: ISO 3166-1 alpha-2 country code (case-insensitive).

        Returns:
            Institutions in provider order.

        Raises:
            ValueError: If the country code is not two letters.
        """
        country = (country_code or "").strip().upper()
        if len(country) != 2 or not country.isalpha():
            raise ValueError(f"Invalid country code: {country_code!r}")

        entries = await self.client.list_institutions(country)
        institutions = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id"):
                logger.warning(f"Skipping malformed institution entry: {entry!r}")
                continue
            institutions.append(Institution.from_provider(entry))

        logger.info(f"Found {len(institutions)} institutions for {country}")
        return institutions
