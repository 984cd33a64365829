"""
Product records mapped from sheet rows, and the paged search result.
"""

import typing as t

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from productloader.exceptions import MalformedRow

log = structlog.get_logger(__name__)

DEFAULT_CURRENCY = "USD"
PLACEHOLDER_CATEGORY_IDS = (1, 2)

# Positional columns of the sheet range C:G
SKU_COLUMN = 0
TITLE_COLUMN = 1
PRICE_COLUMN = 3
IMAGE_COLUMN = 4
ROW_WIDTH = 5


class Price(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str = DEFAULT_CURRENCY
    amount: float


class ProductRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sku: str
    title: str
    description: str
    price: Price
    image_url: str
    categoryIds: list[int] = Field(default_factory=lambda: list(PLACEHOLDER_CATEGORY_IDS))

    @classmethod
    def from_row(cls, row: t.Sequence[str]) -> "ProductRecord":
        """
        Map one sheet row to a product record.

        Parameters
        ----------
        row : typing.Sequence[str]
            Cells of the row, identifier first. Short rows are padded.

        Returns
        -------
        ProductRecord
            Mapped record; ``description`` is synthesized from the title.

        Raises
        ------
        MalformedRow
            If the price cell is not a number.
        """
        cells = list(row) + [""] * (ROW_WIDTH - len(row))
        title = cells[TITLE_COLUMN]
        try:
            return cls(
                sku=cells[SKU_COLUMN],
                title=title,
                description=f"Description for product {title}",
                price=Price(amount=cells[PRICE_COLUMN]),
                image_url=cells[IMAGE_COLUMN],
            )
        except ValidationError as error:
            log.debug(event="Row rejected", sku=cells[SKU_COLUMN], errors=error.error_count())
            raise MalformedRow(
                f"Row for sku={cells[SKU_COLUMN]!r} has an invalid price {cells[PRICE_COLUMN]!r}"
            ) from error


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    offset: int
    limit: int
    products: list[ProductRecord]
