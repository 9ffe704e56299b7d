# Overview: Decoding of queued payloads into typed, validated operations per entity kind.

"""
Wire shapes (payload is JSON, stored verbatim on the queue):

    product   {"id", "name", "price", "stock", "version", "updated_at"}
    user      {"id", "name", "email", "password", "role", "device_id",
               "version", "created_at", "updated_at"}
    sale      {"sale": {"id", "user_id", "device_id"},
               "items": [{"id"?, "product_id", "quantity", "price"}, ...]}
    purchase  {"purchase": {"id", "supplier", "user_id", "device_id"},
               "items": [...]}

Totals, header versions and created_at sent by devices are accepted but
discarded; the server derives them.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Union

from ..errors import DecodeError, UnknownEntityTypeError
from ..models import Product, User, Sale, SaleItem, Purchase, PurchaseItem
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_product,
    enforce_rules_user,
    enforce_rules_line_item,
)

logger = logging.getLogger(__name__)


class EntityKind(str, enum.Enum):
    PRODUCT = "product"
    USER = "user"
    SALE = "sale"
    PURCHASE = "purchase"

    @classmethod
    def parse(cls, value: str | None) -> "EntityKind":
        try:
            return cls(value)
        except ValueError:
            raise UnknownEntityTypeError(
                f"unknown entity type: {value!r}",
                details={"entity_type": value},
            ) from None


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"id", "name", "price", "stock", "version", "updated_at"},
    required={"id"},
    ignored_fields={"created_at"},
)

USER_POLICY = ModelValidationPolicy(
    writable_fields={
        "id", "name", "email", "password_hash", "role", "device_id",
        "version", "created_at", "updated_at",
    },
    required={"id"},
    aliases={"password": "password_hash"},
)

SALE_POLICY = ModelValidationPolicy(
    writable_fields={"id", "user_id", "device_id"},
    required={"id"},
    ignored_fields={"total", "version", "created_at"},
)

PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={"id", "supplier", "user_id", "device_id"},
    required={"id"},
    ignored_fields={"total_amount", "total", "version", "created_at"},
)

SALE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"id", "product_id", "quantity", "price"},
    required={"product_id", "quantity", "price"},
    ignored_fields={"total", "sale_id"},
)

PURCHASE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"id", "product_id", "quantity", "price"},
    required={"product_id", "quantity", "price"},
    ignored_fields={"total", "purchase_id"},
)


@dataclass(frozen=True)
class VersionedPayload:
    """Product or user state to be merged last-writer-wins."""
    kind: EntityKind
    entity_id: str
    fields: dict

    @property
    def version(self) -> int:
        return self.fields.get("version", 1)


@dataclass(frozen=True)
class LineItemPayload:
    id: str | None
    product_id: str
    quantity: int
    price: float


@dataclass(frozen=True)
class TransactionPayload:
    """Sale or purchase header with its owned lines."""
    kind: EntityKind
    entity_id: str
    header: dict
    items: tuple[LineItemPayload, ...]


DecodedOperation = Union[VersionedPayload, TransactionPayload]


def _load_json(raw) -> object:
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"payload is not valid JSON: {exc.msg}") from exc
    except (ValueError, RecursionError) as exc:
        # Bad encodings, out-of-range numbers, nesting deeper than the parser allows
        raise DecodeError(f"payload is not valid JSON: {type(exc).__name__}") from exc
    return raw


def _with_entity_id(data: dict, entity_id: str | None) -> dict:
    payload_id = data.get("id")
    if payload_id in (None, "") and entity_id:
        return {**data, "id": entity_id}
    if entity_id and payload_id is not None and str(payload_id) != str(entity_id):
        # entity_id is advisory; the payload names the entity
        logger.warning("Payload id %r differs from entity_id %r; using payload id", payload_id, entity_id)
    return data


def _validate(model, data, policy, *rules) -> dict:
    try:
        cleaned = validate_payload(model=model, payload=data, policy=policy)
        for rule in rules:
            rule(cleaned)
    except ValidationError as exc:
        raise DecodeError(str(exc), details={"model": model.__tablename__}) from exc
    return cleaned


def _decode_versioned(kind, model, policy, rule):
    def decode(data, entity_id):
        if not isinstance(data, dict):
            raise DecodeError(f"{kind.value} payload must be a JSON object")
        cleaned = _validate(model, _with_entity_id(data, entity_id), policy, rule)
        return VersionedPayload(kind=kind, entity_id=cleaned["id"], fields=cleaned)
    return decode


def _decode_transaction(kind, header_key, header_model, header_policy, item_model, item_policy):
    def decode(data, entity_id):
        if not isinstance(data, dict):
            raise DecodeError(f"{kind.value} payload must be a JSON object")
        header_data = data.get(header_key)
        if not isinstance(header_data, dict):
            raise DecodeError(f"{kind.value} payload requires a '{header_key}' object")
        header = _validate(header_model, _with_entity_id(header_data, entity_id), header_policy)

        raw_items = data.get("items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise DecodeError("items must be a list")

        items = []
        for index, raw_item in enumerate(raw_items, start=1):
            if not isinstance(raw_item, dict):
                raise DecodeError(f"item {index} must be a JSON object")
            cleaned = _validate(item_model, raw_item, item_policy, enforce_rules_line_item)
            items.append(LineItemPayload(
                id=cleaned.get("id") or None,
                product_id=cleaned["product_id"],
                quantity=cleaned["quantity"],
                price=cleaned["price"],
            ))
        return TransactionPayload(kind=kind, entity_id=header["id"], header=header, items=tuple(items))
    return decode


_DECODERS = {
    EntityKind.PRODUCT: _decode_versioned(EntityKind.PRODUCT, Product, PRODUCT_POLICY, enforce_rules_product),
    EntityKind.USER: _decode_versioned(EntityKind.USER, User, USER_POLICY, enforce_rules_user),
    EntityKind.SALE: _decode_transaction(
        EntityKind.SALE, "sale", Sale, SALE_POLICY, SaleItem, SALE_ITEM_POLICY,
    ),
    EntityKind.PURCHASE: _decode_transaction(
        EntityKind.PURCHASE, "purchase", Purchase, PURCHASE_POLICY, PurchaseItem, PURCHASE_ITEM_POLICY,
    ),
}

_missing_decoders = set(EntityKind) - set(_DECODERS)
if _missing_decoders:
    raise ValueError(f"no decoder for entity kinds: {sorted(k.value for k in _missing_decoders)}")


def decode_operation(entity_type: str | None, payload, entity_id: str | None = None) -> DecodedOperation:
    """
    Turn a queued (entity_type, payload) pair into a typed operation.

    Raises UnknownEntityTypeError for unroutable types and DecodeError when
    the payload does not have the shape its kind requires.
    """
    kind = EntityKind.parse(entity_type)
    data = _load_json(payload)
    return _DECODERS[kind](data, entity_id)
