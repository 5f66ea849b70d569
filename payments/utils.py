"""Paymob callback signature helpers."""

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from decimal import Decimal

from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

# Field order dictated by Paymob's HMAC documentation; do not sort.
PROCESSED_ORDERED_KEYS = [
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order.id",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
]

# The redirect callback sends the transaction's order id as a flat ``order``.
REDIRECT_ORDERED_KEYS = [("order" if k == "order.id" else k) for k in PROCESSED_ORDERED_KEYS]


class MissingSecret(ImproperlyConfigured):
    pass


def flatten(payload, prefix: str = "") -> dict:
    """Flatten nested mappings into dotted keys; sequences stay leaves."""
    result = {}
    for key, value in (payload or {}).items():
        new_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            result.update(flatten(value, new_key))
        else:
            result[new_key] = value
    return result


def _js_number(value: float) -> str:
    """Format a float the way JavaScript's ``String(number)`` does."""
    if value != value:
        return "NaN"
    if value in (float("inf"), float("-inf")):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    if 1e-6 <= abs(value) < 1e21:
        return format(Decimal(repr(value)), "f")
    mantissa, _, exponent = repr(value).partition("e")
    exp = int(exponent)
    return f"{mantissa}e{'+' if exp > 0 else '-'}{abs(exp)}"


def _json_fragment(value) -> str:
    # compact JSON matching JSON.stringify, numbers included
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _js_number(value) if value == value and abs(value) != float("inf") else "null"
    if isinstance(value, (int, Decimal)):
        return stringify(value)
    if isinstance(value, Mapping):
        return "{" + ",".join(
            json.dumps(str(k), ensure_ascii=False) + ":" + _json_fragment(v) for k, v in value.items()
        ) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_json_fragment(v) for v in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def stringify(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return _json_fragment(value)
    if isinstance(value, float):
        return _js_number(value)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def canonical_string(payload, ordered_keys) -> str:
    """Concatenate the values of ``ordered_keys`` with no separator.

    Missing and null values contribute an empty string.
    """
    flat = flatten(payload)
    return "".join(stringify(flat.get(k)) for k in ordered_keys)


def sign_callback(payload, ordered_keys, secret) -> str:
    if not secret:
        logger.error("Paymob HMAC secret missing; refusing to sign or verify callbacks")
        raise MissingSecret("PAYMOB['HMAC_SECRET'] setting is required to verify callbacks")
    if isinstance(secret, str):
        secret = secret.encode()
    msg = canonical_string(payload, ordered_keys).encode()
    return hmac.new(secret, msg, hashlib.sha512).hexdigest()


def verify_callback(payload, expected_digest, ordered_keys, secret) -> bool:
    """Check a Paymob callback against the digest it was delivered with.

    ``secret`` is passed in by the caller rather than read from settings.
    Raises :class:`MissingSecret` when it is empty; a mismatching digest is
    an ordinary ``False``.
    """
    computed = sign_callback(payload, ordered_keys, secret)
    expected = expected_digest or ""
    if isinstance(expected, str):
        expected = expected.encode("utf-8")
    elif not isinstance(expected, bytes):
        # numbers or objects in the hmac field never match a hex digest
        return False
    return hmac.compare_digest(computed.encode("ascii"), expected)
