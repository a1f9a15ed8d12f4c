"""
Record transformer: raw source documents to typed records.

Every "is this field the expected shape" check lives here. Each
``transform_*`` function is pure: it reads a mapping and returns a frozen
record, or raises MalformedField naming the offending field.

Rules shared by all entity kinds:
- ``_id`` is required and kept as an opaque string.
- Scalars pass through unchanged, whatever their wire type.
- An absent (or null) array is empty; any other non-array value is malformed,
  and so is an element of the wrong type.
- An absent nested object produces no dependent rows; a present one must
  carry its required members.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from catalogsync.exceptions import MalformedField

_INTEGER = re.compile(r"[+-]?[0-9]+")


# --- Records -----------------------------------------------------------------


class _Record:
    """Maps record attributes to target columns via ``COLUMNS``."""

    COLUMNS: ClassVar[dict[str, str]] = {}

    def columns(self) -> dict[str, Any]:
        """Mutable columns of the entity row (everything but ID), in table order."""
        return {column: getattr(self, attr) for attr, column in self.COLUMNS.items()}


@dataclass(frozen=True)
class OfferRecord(_Record):
    id: str
    product_id: Any = None
    category: Any = None
    shop_id: Any = None
    availability_date: Any = None
    delivery: Any = None
    delivery_duration: Any = None
    kaspi_delivery: Any = None
    kd_destination_city: Any = None
    kd_pickup_date: Any = None
    located_in_point: Any = None
    shop_rating: Any = None
    shop_reviews_quantity: Any = None
    preorder: Any = None
    price: Any = None

    COLUMNS: ClassVar[dict[str, str]] = {
        "product_id": "PRODUCT_ID",
        "category": "CATEGORY",
        "shop_id": "SHOP_ID",
        "availability_date": "AVAILABILITY_DATE",
        "delivery": "DELIVERY",
        "delivery_duration": "DELIVERY_DURATION",
        "kaspi_delivery": "KASPI_DELIVERY",
        "kd_destination_city": "KD_DESTINATION_CITY",
        "kd_pickup_date": "KD_PICKUP_DATE",
        "located_in_point": "LOCATED_IN_POINT",
        "shop_rating": "SHOP_RATING",
        "shop_reviews_quantity": "SHOP_REVIEWS_QUANTITY",
        "preorder": "PREORDER",
        "price": "PRICE",
    }


@dataclass(frozen=True)
class MonthlyInstallment:
    installment_id: int
    installment: bool
    formatted_per_month: str


@dataclass(frozen=True)
class Promo:
    code: str
    priority: int
    type: str
    text: str | None = None


@dataclass(frozen=True)
class ProductRecord(_Record):
    id: str
    category_id: int
    brand: str | None = None
    categories: tuple[str, ...] = ()
    category_codes: tuple[str, ...] = ()
    monthly_installment: MonthlyInstallment | None = None
    promos: tuple[Promo, ...] = ()
    adjusted_rating: Any = None
    created_time: Any = None
    credit_monthly_price: Any = None
    currency: Any = None
    delivery_duration: Any = None
    discount: Any = None
    has_variants: Any = None
    loan_available: Any = None
    rating: Any = None
    reviews_link: Any = None
    reviews_quantity: Any = None
    link: Any = None
    title: Any = None
    unit_price: Any = None
    unit_sale_price: Any = None
    weight: Any = None

    # BRAND_ID is resolved at write time, not stored on the record
    COLUMNS: ClassVar[dict[str, str]] = {
        "adjusted_rating": "ADJUSTED_RATING",
        "category_id": "CATEGORY_ID",
        "created_time": "CREATED_TIME",
        "credit_monthly_price": "CREDIT_MONTHLY_PRICE",
        "currency": "CURRENCY",
        "delivery_duration": "DELIVERY_DURATION",
        "discount": "DISCOUNT",
        "has_variants": "HAS_VARIANTS",
        "loan_available": "LOAN_AVAILABLE",
        "rating": "RATING",
        "reviews_link": "REVIEWS_LINK",
        "reviews_quantity": "REVIEWS_QUANTITY",
        "link": "LINK",
        "title": "TITLE",
        "unit_price": "UNIT_PRICE",
        "unit_sale_price": "UNIT_SALE_PRICE",
        "weight": "WEIGHT",
    }


@dataclass(frozen=True)
class ShopRecord(_Record):
    id: str
    name: Any = None

    COLUMNS: ClassVar[dict[str, str]] = {"name": "NAME"}


@dataclass(frozen=True)
class ShopReviewRecord(_Record):
    id: str
    shop_id: Any = None
    rating: Any = None
    author: Any = None
    comment: str | None = None
    date: Any = None

    COLUMNS: ClassVar[dict[str, str]] = {
        "shop_id": "SHOP_ID",
        "rating": "RATING",
        "author": "AUTHOR",
        "comment": "COMMENT",
        "date": "DATE",
    }


# --- Field readers -----------------------------------------------------------


def external_id(doc: Mapping[str, Any]) -> str:
    """The document's ``_id`` as an opaque string."""
    if not isinstance(doc, Mapping):
        raise MalformedField("<document>", "object", value=doc)
    value = doc.get("_id")
    if value is None:
        raise MalformedField("_id", "identifier", value=value)
    return str(value)


def _string_list(doc: Mapping[str, Any], field: str) -> tuple[str, ...]:
    value = doc.get(field)
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise MalformedField(field, "array of strings", value=value)
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise MalformedField(f"{field}[{i}]", "string", value=item)
    return tuple(value)


def _optional_string(doc: Mapping[str, Any], field: str) -> str | None:
    value = doc.get(field)
    if value is not None and not isinstance(value, str):
        raise MalformedField(field, "string", value=value)
    return value


def _integer_string(doc: Mapping[str, Any], field: str) -> int:
    value = doc.get(field)
    if not isinstance(value, str) or not _INTEGER.fullmatch(value):
        raise MalformedField(field, "integer string", value=value)
    return int(value)


def _whole_number(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedField(field, "number", value=value)
    if isinstance(value, float) and not value.is_integer():
        raise MalformedField(field, "whole number", value=value)
    return int(value)


def _member(obj: Mapping[str, Any], key: str, field: str, kind: type, expected: str) -> Any:
    value = obj.get(key)
    if not isinstance(value, kind):
        raise MalformedField(f"{field}.{key}", expected, value=value)
    return value


def _monthly_installment(doc: Mapping[str, Any]) -> MonthlyInstallment | None:
    value = doc.get("monthlyInstallment")
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise MalformedField("monthlyInstallment", "object", value=value)
    return MonthlyInstallment(
        installment_id=_whole_number(value.get("id"), "monthlyInstallment.id"),
        installment=_member(value, "installment", "monthlyInstallment", bool, "boolean"),
        formatted_per_month=_member(value, "formattedPerMonth", "monthlyInstallment", str, "string"),
    )


def _promos(doc: Mapping[str, Any]) -> tuple[Promo, ...]:
    value = doc.get("promo")
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise MalformedField("promo", "array of objects", value=value)

    promos = []
    for i, item in enumerate(value):
        field = f"promo[{i}]"
        if not isinstance(item, Mapping):
            raise MalformedField(field, "object", value=item)
        text = item.get("text")
        if text is not None and not isinstance(text, str):
            raise MalformedField(f"{field}.text", "string", value=text)
        promos.append(
            Promo(
                code=_member(item, "code", field, str, "string"),
                priority=_whole_number(item.get("priority"), f"{field}.priority"),
                type=_member(item, "type", field, str, "string"),
                text=text,
            )
        )
    return tuple(promos)


def _review_comment(doc: Mapping[str, Any]) -> str | None:
    value = doc.get("comment")
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise MalformedField("comment", "object", value=value)
    if "text" not in value:
        raise MalformedField("comment.text", "string")
    text = value["text"]
    if text is not None and not isinstance(text, str):
        raise MalformedField("comment.text", "string", value=text)
    return text


# --- Transformers ------------------------------------------------------------


def transform_offer(doc: Mapping[str, Any]) -> OfferRecord:
    return OfferRecord(
        id=external_id(doc),
        product_id=doc.get("masterSku"),
        category=doc.get("masterCategory"),
        shop_id=doc.get("merchantId"),
        availability_date=doc.get("availabilityDate"),
        delivery=doc.get("delivery"),
        delivery_duration=doc.get("deliveryDuration"),
        kaspi_delivery=doc.get("kaspiDelivery"),
        kd_destination_city=doc.get("kdDestinationCity"),
        kd_pickup_date=doc.get("kdPickupDate"),
        located_in_point=doc.get("locatedInPoint"),
        shop_rating=doc.get("merchantRating"),
        shop_reviews_quantity=doc.get("merchantReviewsQuantity"),
        preorder=doc.get("preorder"),
        price=doc.get("price"),
    )


def transform_product(doc: Mapping[str, Any]) -> ProductRecord:
    """
    Decode a product document.

    Besides the scalar columns this validates ``categoryId`` (integer string),
    ``category`` / ``categoryCodes`` (arrays of strings), the optional
    ``monthlyInstallment`` object and the optional ``promo`` array.
    """
    return ProductRecord(
        id=external_id(doc),
        category_id=_integer_string(doc, "categoryId"),
        brand=_optional_string(doc, "brand"),
        categories=_string_list(doc, "category"),
        category_codes=_string_list(doc, "categoryCodes"),
        monthly_installment=_monthly_installment(doc),
        promos=_promos(doc),
        adjusted_rating=doc.get("adjustedRating"),
        created_time=doc.get("createdTime"),
        credit_monthly_price=doc.get("creditMonthlyPrice"),
        currency=doc.get("currency"),
        delivery_duration=doc.get("deliveryDuration"),
        discount=doc.get("discount"),
        has_variants=doc.get("hasVariants"),
        loan_available=doc.get("loanAvailable"),
        rating=doc.get("rating"),
        reviews_link=doc.get("reviewsLink"),
        reviews_quantity=doc.get("reviewsQuantity"),
        link=doc.get("shopLink"),
        title=doc.get("title"),
        unit_price=doc.get("unitPrice"),
        unit_sale_price=doc.get("unitSalePrice"),
        weight=doc.get("weight"),
    )


def transform_shop(doc: Mapping[str, Any]) -> ShopRecord:
    return ShopRecord(id=external_id(doc), name=doc.get("name"))


def transform_shop_review(doc: Mapping[str, Any]) -> ShopReviewRecord:
    return ShopReviewRecord(
        id=external_id(doc),
        shop_id=doc.get("merchant_id"),
        rating=doc.get("rating"),
        author=doc.get("author"),
        comment=_review_comment(doc),
        date=doc.get("date"),
    )
