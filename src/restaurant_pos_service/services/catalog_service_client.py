"""Client for the Catalog Service API."""

import asyncio
import logging
from typing import Any

import httpx

from restaurant_pos_service.errors import InvalidAmount
from restaurant_pos_service.models.catalog_models import Option, OptionGroup, Product
from restaurant_pos_service.models.money import DEFAULT_CURRENCY, Money

logger = logging.getLogger(__name__)


class CatalogServiceClient:
    """HTTP client for fetching product snapshots from the Catalog Service.

    The catalog returns prices as major-unit decimal strings (``"20.00"``);
    they are converted to Money here so nothing downstream sees a decimal.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        currency: str = DEFAULT_CURRENCY,
        timeout_seconds: float = 5.0,
    ) -> None:
        """Initialize the Catalog Service client.

        Args:
            base_url: Base URL of the Catalog Service API
            api_key: API key for service-to-service authentication
            currency: Currency the catalog prices are expressed in
            timeout_seconds: Per-request timeout
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.currency = currency
        self.timeout_seconds = timeout_seconds

    def _parse_money(self, value: Any) -> Money:
        return Money.from_decimal(str(value), self.currency)

    def _parse_product(self, data: dict[str, Any]) -> Product:
        option_groups = [
            OptionGroup(
                id=group["id"],
                name=group["name"],
                selection_type=group["selection_type"],
                is_required=group.get("is_required", False),
                min_options=group.get("min_options", 0),
                max_options=group.get("max_options", 1),
                options=[
                    Option(
                        id=option["id"],
                        name=option["name"],
                        price_delta=self._parse_money(option.get("price_delta", "0")),
                    )
                    for option in group.get("options", [])
                ],
            )
            for group in data.get("option_groups", [])
        ]

        return Product(
            id=data["id"],
            name=data["name"],
            price=self._parse_money(data["price"]),
            option_groups=option_groups,
            available=data.get("available", True),
        )

    async def _fetch_product(self, client: httpx.AsyncClient, product_id: str) -> Product | None:
        url = f"{self.base_url}/products/{product_id}"
        headers = {"X-API-Key": self.api_key}

        try:
            response = await client.get(url, headers=headers)
            if response.status_code == 404:
                logger.warning(f"Product {product_id} not found in catalog")
                return None
            response.raise_for_status()
            return self._parse_product(response.json())

        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            logger.error(f"Failed to fetch product {product_id}: {e}")  # pragma: no cover
            return None
        except (KeyError, ValueError, InvalidAmount) as e:
            logger.error(f"Catalog returned an invalid product {product_id}: {e}")  # pragma: no cover
            return None

    async def get_product(self, product_id: str) -> Product | None:
        """Fetch the current catalog definition of a product.

        Args:
            product_id: Product identifier

        Returns:
            Product, or None if it does not exist or the request failed
        """
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await self._fetch_product(client, product_id)

    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        """Fetch several products concurrently.

        Args:
            product_ids: Product identifiers; duplicates are fetched once

        Returns:
            Mapping of product id to Product for every product that was found
        """
        unique_ids = list(dict.fromkeys(product_ids))

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            results = await asyncio.gather(
                *(self._fetch_product(client, product_id) for product_id in unique_ids)
            )

        return {
            product_id: product
            for product_id, product in zip(unique_ids, results, strict=True)
            if product is not None
        }
