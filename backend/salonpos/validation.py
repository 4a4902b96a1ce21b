from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from salonpos.services.errors import PosError


PAYMENT_METHODS = ("cash", "card", "transfer", "gateway", "mixed")
LEG_METHODS = ("cash", "card", "transfer", "gateway")
REFUND_METHODS = ("cash", "card", "transfer", "gateway", "store_credit")
ITEM_KINDS = ("service", "product")
MOVEMENT_TYPES = ("in", "out")


class ValidationError(PosError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


# =============================================================================
# REQUEST TYPES
# =============================================================================

@dataclass(frozen=True)
class CatalogItem:
    """A cart line resolved against the business catalog."""
    kind: str
    item_id: int
    quantity: int = 1
    price: float | None = None  # override; catalog price when None
    discount: float = 0.0
    staff_id: int | None = None


@dataclass(frozen=True)
class AdHocItem:
    """A cart line with no catalog entry (quick sale, custom charge). Never touches stock."""
    name: str
    unit_price: float
    quantity: int = 1
    discount: float = 0.0
    kind: str = "service"
    staff_id: int | None = None


SaleItem = Union[CatalogItem, AdHocItem]


@dataclass(frozen=True)
class PaymentLeg:
    method: str
    amount: float
    reference: str | None = None


@dataclass(frozen=True)
class ClientInfo:
    client_id: int | None = None
    name: str | None = None
    phone: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class RefundItem:
    item_index: int
    quantity: int


@dataclass(frozen=True)
class SaleRequest:
    items: list[SaleItem]
    payment_method: str
    payments: list[PaymentLeg] | None = None
    global_discount: float = 0.0
    tip: float = 0.0
    appointment_id: int | None = None
    client: ClientInfo | None = None
    notes: str | None = None
    gateway_payment_id: str | None = None
    idempotency_key: str | None = None


# =============================================================================
# PRIMITIVE COERCION
# =============================================================================

def _int(value: Any, field: str, *, minimum: int | None = None) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        value = int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return value


def _number(value: Any, field: str, *, minimum: float | None = None, maximum: float | None = None) -> float:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    if not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    value = float(value)
    if value != value or value in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a finite number")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum:g}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be at most {maximum:g}")
    return value


def _positive(value: Any, field: str) -> float:
    number = _number(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return number


def _optional_str(value: Any, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text or None


def _choice(value: Any, field: str, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of {', '.join(choices)}")
    return value


# =============================================================================
# DOMAIN CHECKS (shared by services and payload parsing)
# =============================================================================

def check_sale_item(item: SaleItem, index: int) -> None:
    """Validate an already-built sale item; raises ValidationError."""
    prefix = f"items[{index}]"
    if isinstance(item, CatalogItem):
        _choice(item.kind, f"{prefix}.type", ITEM_KINDS)
        if item.price is not None:
            _number(item.price, f"{prefix}.price", minimum=0)
    elif isinstance(item, AdHocItem):
        _choice(item.kind, f"{prefix}.type", ITEM_KINDS)
        if not item.name or not item.name.strip():
            raise ValidationError(f"{prefix}.name is required")
        _number(item.unit_price, f"{prefix}.price", minimum=0)
    else:
        raise ValidationError(f"{prefix} has an unsupported item shape")
    _int(item.quantity, f"{prefix}.quantity", minimum=1)
    _number(item.discount, f"{prefix}.discount", minimum=0, maximum=100)


def check_payment_legs(payment_method: str, payments: list[PaymentLeg] | None) -> None:
    _choice(payment_method, "payment_method", PAYMENT_METHODS)
    for i, leg in enumerate(payments or []):
        _choice(leg.method, f"payments[{i}].method", LEG_METHODS)
        _positive(leg.amount, f"payments[{i}].amount")


# =============================================================================
# PAYLOAD PARSING (request layer)
# =============================================================================

def _parse_item(raw: Any, index: int) -> SaleItem:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    prefix = f"items[{index}]"
    kind = raw.get("type", "service")
    quantity = _int(raw.get("quantity", 1), f"{prefix}.quantity", minimum=1)
    discount = _number(raw.get("discount", 0) or 0, f"{prefix}.discount", minimum=0, maximum=100)
    staff_id = _int(raw["staff_id"], f"{prefix}.staff_id") if raw.get("staff_id") is not None else None

    if raw.get("item_id") is not None:
        price = raw.get("price")
        item: SaleItem = CatalogItem(
            kind=_choice(kind, f"{prefix}.type", ITEM_KINDS),
            item_id=_int(raw["item_id"], f"{prefix}.item_id", minimum=1),
            quantity=quantity,
            price=_number(price, f"{prefix}.price", minimum=0) if price is not None else None,
            discount=discount,
            staff_id=staff_id,
        )
    else:
        name = _optional_str(raw.get("name"), f"{prefix}.name", 100)
        if not name:
            raise ValidationError(f"{prefix} needs either item_id or name")
        item = AdHocItem(
            name=name,
            unit_price=_number(raw.get("price"), f"{prefix}.price", minimum=0),
            quantity=quantity,
            discount=discount,
            kind=_choice(kind, f"{prefix}.type", ITEM_KINDS),
            staff_id=staff_id,
        )
    return item


def _parse_leg(raw: Any, index: int) -> PaymentLeg:
    if not isinstance(raw, dict):
        raise ValidationError(f"payments[{index}] must be an object")
    return PaymentLeg(
        method=_choice(raw.get("method"), f"payments[{index}].method", LEG_METHODS),
        amount=_positive(raw.get("amount"), f"payments[{index}].amount"),
        reference=_optional_str(raw.get("reference"), f"payments[{index}].reference", 128),
    )


def parse_sale_request(payload: dict | None) -> SaleRequest:
    """
    Validate + normalize a checkout payload into a SaleRequest.

    Items carrying item_id are catalog lines; items without it need a
    name and price and become ad-hoc lines.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    items = [_parse_item(raw, i) for i, raw in enumerate(raw_items)]

    payment_method = _choice(payload.get("payment_method"), "payment_method", PAYMENT_METHODS)

    raw_payments = payload.get("payments")
    payments = None
    if raw_payments is not None:
        if not isinstance(raw_payments, list):
            raise ValidationError("payments must be a list")
        payments = [_parse_leg(raw, i) for i, raw in enumerate(raw_payments)]

    client = None
    raw_client = payload.get("client")
    if raw_client is not None or payload.get("client_id") is not None:
        raw_client = raw_client if isinstance(raw_client, dict) else {}
        client_id = payload.get("client_id", raw_client.get("id"))
        client = ClientInfo(
            client_id=_int(client_id, "client_id", minimum=1) if client_id is not None else None,
            name=_optional_str(raw_client.get("name"), "client.name", 128),
            phone=_optional_str(raw_client.get("phone"), "client.phone", 32),
            email=_optional_str(raw_client.get("email"), "client.email", 255),
        )

    appointment_id = payload.get("appointment_id")

    return SaleRequest(
        items=items,
        payment_method=payment_method,
        payments=payments,
        global_discount=_number(payload.get("global_discount", 0) or 0, "global_discount", minimum=0, maximum=100),
        tip=_number(payload.get("tip", 0) or 0, "tip", minimum=0),
        appointment_id=_int(appointment_id, "appointment_id", minimum=1) if appointment_id is not None else None,
        client=client,
        notes=_optional_str(payload.get("notes"), "notes", 500),
        gateway_payment_id=_optional_str(payload.get("gateway_payment_id"), "gateway_payment_id", 128),
        idempotency_key=_optional_str(payload.get("idempotency_key"), "idempotency_key", 64),
    )


def parse_refund_items(raw_items: Any) -> list[RefundItem] | None:
    """None means "refund everything that is left"."""
    if raw_items is None:
        return None
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list when provided")
    parsed = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        parsed.append(RefundItem(
            item_index=_int(raw.get("item_index"), f"items[{i}].item_index"),
            quantity=_int(raw.get("quantity"), f"items[{i}].quantity", minimum=1),
        ))
    return parsed


def parse_refund_method(value: Any) -> str:
    return _choice(value, "refund_method", REFUND_METHODS)


def parse_movement_type(value: Any) -> str:
    return _choice(value, "type", MOVEMENT_TYPES)


def parse_amount(value: Any, field: str = "amount") -> float:
    return _number(value, field)


def parse_optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return _int(value, field)


def parse_text(value: Any, field: str, max_length: int, *, required: bool = False) -> str | None:
    text = _optional_str(value, field, max_length)
    if required and not text:
        raise ValidationError(f"{field} is required")
    return text
