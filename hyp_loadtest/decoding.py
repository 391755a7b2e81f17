"""
Response Decoders
=================
The backend wraps results in ``{"data": ...}`` where ``data`` may be a single
object, an array of objects or absent. Instead of probing fields ad hoc,
every body is first classified into a :data:`ResponseShape` and each decoder
returns a :data:`DecodeResult`: either :class:`Decoded` with the value or a
:class:`DecodeError` naming what was missing.
"""

from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Union, Tuple

from hyp_loadtest.client import ApiResponse


# =============================================================================
# RESPONSE SHAPES
# =============================================================================

@dataclass(frozen=True)
class SingleRecord:
    record: Dict[str, Any]


@dataclass(frozen=True)
class RecordArray:
    records: Tuple[Dict[str, Any], ...]


@dataclass(frozen=True)
class Empty:
    pass


ResponseShape = Union[SingleRecord, RecordArray, Empty]


@dataclass(frozen=True)
class Decoded:
    value: Any


@dataclass(frozen=True)
class DecodeError:
    reason: str


DecodeResult = Union[Decoded, DecodeError]


@dataclass(frozen=True)
class DeliveryRecord:
    """Identifiers needed to post delivery-partner callbacks."""
    delivery_order_id: str
    channel_order_id: Optional[str]


def classify(body: Any) -> ResponseShape:
    """Classify the ``data`` member of a response envelope."""
    if not isinstance(body, dict):
        return Empty()
    data = body.get("data")
    if isinstance(data, list):
        records = tuple(r for r in data if isinstance(r, dict))
        return RecordArray(records) if records else Empty()
    if isinstance(data, dict):
        return SingleRecord(data)
    return Empty()


def decode_shape(response: ApiResponse) -> Union[ResponseShape, DecodeError]:
    if response.status != 200:
        return DecodeError(f"HTTP {response.status}" + (f" ({response.error})" if response.error else ""))
    if response.text and not response.is_json:
        return DecodeError("response body is not valid JSON")
    return classify(response.body)


def first_record(shape: ResponseShape) -> Optional[Dict[str, Any]]:
    if isinstance(shape, RecordArray):
        return shape.records[0]
    if isinstance(shape, SingleRecord):
        return shape.record
    return None


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _field(record: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if _present(value):
            return value
    return None


def _decode_field(response: ApiResponse, label: str, *keys: str) -> DecodeResult:
    shape = decode_shape(response)
    if isinstance(shape, DecodeError):
        return shape
    record = first_record(shape)
    if record is None:
        return DecodeError(f"{label}: response has no data record")
    value = _field(record, *keys)
    if value is None:
        return DecodeError(f"{label}: field {'/'.join(keys)} missing")
    return Decoded(value)


# =============================================================================
# ENDPOINT DECODERS
# =============================================================================

def decode_customer_id(response: ApiResponse) -> DecodeResult:
    """``POST /login/verify-otp`` -> customer id."""
    return _decode_field(response, "customer id", "id")


def decode_order_id(response: ApiResponse) -> DecodeResult:
    """``POST /order`` -> order id; falls back to a top-level ``id``."""
    result = _decode_field(response, "order id", "id", "_id")
    if isinstance(result, DecodeError) and response.ok and isinstance(response.body, dict):
        top_level = response.body.get("id")
        if _present(top_level):
            return Decoded(top_level)
    return result


def decode_payment_order_id(response: ApiResponse) -> DecodeResult:
    """``POST /payment/{orderId}`` -> gateway payment-order id."""
    return _decode_field(response, "payment order id", "paymentOrderId")


def decode_order_status(response: ApiResponse) -> DecodeResult:
    """``GET /order/{id}`` -> lifecycle status string."""
    return _decode_field(response, "order status", "status")


def decode_address_id(response: ApiResponse) -> DecodeResult:
    """Address list or created address -> id, preferring the default address."""
    shape = decode_shape(response)
    if isinstance(shape, DecodeError):
        return shape
    if isinstance(shape, RecordArray):
        preferred = next((r for r in shape.records if r.get("isDefault")), shape.records[0])
        value = _field(preferred, "id", "_id")
        if value is None:
            value = _field(shape.records[0], "id", "_id")
    elif isinstance(shape, SingleRecord):
        value = _field(shape.record, "id", "_id")
    else:
        return DecodeError("address id: no addresses")
    if value is None:
        return DecodeError("address id: field id/_id missing")
    return Decoded(value)


def decode_delivery_record(response: ApiResponse) -> DecodeResult:
    """``GET /delivery/status/{orderId}`` -> :class:`DeliveryRecord`."""
    shape = decode_shape(response)
    if isinstance(shape, DecodeError):
        return shape
    record = first_record(shape)
    if record is None:
        return DecodeError("delivery record: no data record")

    delivery_order_id = _field(record, "id", "_id")
    if delivery_order_id is None:
        return DecodeError("delivery record: no delivery order id")

    channel_order_id = None
    fulfillment = record.get("fulfillment")
    if isinstance(fulfillment, dict) and isinstance(fulfillment.get("channel"), dict):
        channel_order_id = fulfillment["channel"].get("order_id")

    return Decoded(DeliveryRecord(
        delivery_order_id=str(delivery_order_id),
        channel_order_id=str(channel_order_id) if _present(channel_order_id) else None,
    ))


def decode_delivery_status(response: ApiResponse) -> DecodeResult:
    """``GET /delivery/status/{orderId}`` -> partner-side status (``fulfilled``...)."""
    return _decode_field(response, "delivery status", "status")


def decode_records(response: ApiResponse) -> DecodeResult:
    """Any list endpoint -> list of records (possibly empty)."""
    shape = decode_shape(response)
    if isinstance(shape, DecodeError):
        return shape
    if isinstance(shape, RecordArray):
        return Decoded(list(shape.records))
    if isinstance(shape, SingleRecord):
        return Decoded([shape.record])
    return Decoded([])


def value_of(result: DecodeResult, default: Any = None) -> Any:
    """Unwrap a result at a call site that has a fallback."""
    return result.value if isinstance(result, Decoded) else default
