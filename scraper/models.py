# scraper/models.py
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CENTS = Decimal("0.01")


class BookSummary(BaseModel):
    """One product card from a books listing page."""

    model_config = ConfigDict(frozen=True)

    image_url: Optional[str] = None
    rating: Optional[str] = None  # "One" .. "Five", passed through as found
    title: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    product_url: Optional[str] = None

    @field_validator("price")
    @classmethod
    def quantize_price(cls, v):
        return v.quantize(CENTS) if v is not None else v


class BookDetail(BaseModel):
    """Fields only available on a book's own page."""

    model_config = ConfigDict(frozen=True)

    category: Optional[str] = None
    description: Optional[str] = None
    availability: Optional[str] = None
    upc: Optional[str] = None
    product_type: Optional[str] = None
    price_excl_tax: Optional[Decimal] = Field(None, ge=0)
    price_incl_tax: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)
    num_reviews: Optional[int] = Field(None, ge=0)

    @field_validator("price_excl_tax", "price_incl_tax", "tax")
    @classmethod
    def quantize_money(cls, v):
        return v.quantize(CENTS) if v is not None else v


class Book(BookSummary, BookDetail):
    @classmethod
    def assemble(cls, summary, detail=None):
        """
        Merge a listing summary with its detail fields.

        Args:
            summary (BookSummary): Listing-level fields
            detail (BookDetail | None): Detail fields, or None when the detail
                page was not fetched or failed

        Returns:
            Book: Combined record; detail fields stay None without detail
        """
        data = summary.model_dump()
        if detail is not None:
            data.update(detail.model_dump())
        return cls(**data)


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    author: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
