"""
sessionauth/keys.py -- Reserved session keys and the session value codec.

SessionKey members are the only keys the auth handler writes into a session.
They are Enum members, so they never compare equal to the plain str/int keys
application code puts into the same session: `SessionKey.IDENTITY != 0` and
`SessionKey.IDENTITY != "identity"`.

Stores serialize session values with encode_values()/decode_values(). The wire
format is JSON:
  - str, int, float, bool and None pass through unchanged.
  - lists become JSON arrays of encoded items.
  - tuples, dicts and registered types become tagged objects:
        {"__type__": "<tag>", "value": <payload>}
    A dict is tagged as "map" with a list of [key, value] pairs, so non-string
    keys (including SessionKey members) survive the round trip. A tuple is
    tagged as "tuple" so it decodes as a tuple, not a list.

Registration is explicit. The hosting application calls
register_session_types() once at startup; it is idempotent and thread-safe.
Integrators whose verifier returns custom identity objects register them with
register_session_type().

Layer rule: may import from core/ (timecodec). No imports from api/.
"""

from __future__ import annotations

import enum
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from core.timecodec import from_millis, to_millis
from sessionauth.errors import SessionStoreError

logger = logging.getLogger("sessionauth.keys")

_TYPE_FIELD = "__type__"
_VALUE_FIELD = "value"
_MAP_TAG = "map"
_TUPLE_TAG = "tuple"
_RESERVED_TAGS = frozenset({_MAP_TAG, _TUPLE_TAG})


class SessionKey(enum.Enum):
    """Namespaced keys owned by the auth handler."""

    IDENTITY = "identity"
    EXPIRY = "expiry"


@dataclass(frozen=True)
class _Codec:
    cls: type
    tag: str
    encode: Callable[[Any], Any]
    decode: Callable[[Any], Any]


_lock = threading.RLock()
_by_tag: dict[str, _Codec] = {}
_by_class: dict[type, _Codec] = {}
_builtins_registered = False


def register_session_type(
    cls: type,
    tag: str,
    encode: Callable[[Any], Any],
    decode: Callable[[Any], Any],
) -> None:
    """Register a codec for values of type cls.

    encode must return something encode_values() can itself encode (usually a
    JSON primitive or a dict); decode receives that payload after decoding.
    Registering the same (cls, tag) pair again is a no-op. Reusing a tag for a
    different class raises ValueError.
    """
    if tag in _RESERVED_TAGS:
        raise ValueError(f"session type tag {tag!r} is reserved")
    with _lock:
        existing = _by_tag.get(tag)
        if existing is not None:
            if existing.cls is not cls:
                raise ValueError(f"session type tag {tag!r} already registered for {existing.cls.__name__}")
            return
        codec = _Codec(cls=cls, tag=tag, encode=encode, decode=decode)
        _by_tag[tag] = codec
        _by_class[cls] = codec
    logger.debug("Registered session type %s as %r", cls.__name__, tag)


def register_session_types() -> bool:
    """Register the types the auth handler stores in sessions.

    Call once at process start, before constructing a handler. Returns True if
    this call performed the registration, False if it had already happened.
    """
    global _builtins_registered
    with _lock:
        if _builtins_registered:
            return False
        register_session_type(SessionKey, "sessionauth.key", lambda k: k.value, SessionKey)
        register_session_type(datetime, "datetime", to_millis, from_millis)
        _builtins_registered = True
    logger.info("Session types registered")
    return True


def session_types_registered() -> bool:
    with _lock:
        return _builtins_registered


def _codec_for(value: Any) -> _Codec | None:
    codec = _by_class.get(type(value))
    if codec is not None:
        return codec
    for cls, candidate in list(_by_class.items()):
        if isinstance(value, cls):
            return candidate
    return None


def _encode(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, list):
        return [_encode(item) for item in value]
    if type(value) is tuple:
        return {_TYPE_FIELD: _TUPLE_TAG, _VALUE_FIELD: [_encode(item) for item in value]}
    if isinstance(value, dict):
        return {_TYPE_FIELD: _MAP_TAG, _VALUE_FIELD: [[_encode(k), _encode(v)] for k, v in value.items()]}
    codec = _codec_for(value)
    if codec is None:
        raise SessionStoreError(f"session value type not registered: {type(value).__name__}")
    return {_TYPE_FIELD: codec.tag, _VALUE_FIELD: _encode(codec.encode(value))}


def _decode(raw: Any) -> Any:
    if isinstance(raw, list):
        return [_decode(item) for item in raw]
    if not isinstance(raw, dict):
        return raw
    tag = raw.get(_TYPE_FIELD)
    payload = _decode(raw.get(_VALUE_FIELD))
    if tag == _MAP_TAG:
        return {k: v for k, v in payload}
    if tag == _TUPLE_TAG:
        return tuple(payload)
    codec = _by_tag.get(tag)
    if codec is None:
        raise SessionStoreError(f"unknown session value tag: {tag!r}")
    return codec.decode(payload)


def encode_values(values: dict) -> str:
    """Serialize a session values mapping to a JSON string.

    Raises SessionStoreError if any key or value has an unregistered type.
    """
    return json.dumps(_encode(dict(values)), separators=(",", ":"))


def decode_values(data: str) -> dict:
    """Inverse of encode_values(). Raises SessionStoreError on malformed input."""
    try:
        raw = json.loads(data)
        values = _decode(raw)
    except SessionStoreError:
        raise
    except (TypeError, ValueError, OverflowError) as exc:
        raise SessionStoreError("malformed session payload") from exc
    if not isinstance(values, dict):
        raise SessionStoreError("malformed session payload")
    return values
