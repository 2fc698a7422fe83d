"""
Session Serializers: SessionData to and from a compact binary frame.

Frame layout (big-endian)::

    [format 1B][expires_at int64 µs since epoch, UTC][body length uint32][body]

The fixed header lets the codec check expiry right after authentication
and before parsing any application data. The frame is self-delimiting:
trailing or missing bytes are a ``MalformedPayload``.

Two body formats are provided, one deployment uses exactly one of them:

- ``OrjsonSerializer``: JSON documents via orjson. Compact and fast;
  bytes, datetime, timedelta, tuple, set and frozenset values are written
  as single-key tagged objects (``{"__session_tuple__": [...]}``) and
  come back with their type. Models are not carried and stay in memory.
- ``JsonPickleSerializer``: jsonpickle documents, restoring datetimes,
  datamodel and pydantic models. Only ever fed authenticated bytes.
"""
import base64
import struct
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

import jsonpickle
import orjson
from jsonpickle.unpickler import loadclass
from datamodel import BaseModel

from .data import SessionData, is_serializable
from .exceptions import MalformedPayload

try:
    from pydantic import BaseModel as PydanticBaseModel
except ImportError:
    PydanticBaseModel = None

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_HEADER = struct.Struct("!BqI")
HEADER_SIZE = _HEADER.size  # 13 bytes
_ONE_MICROSECOND = timedelta(microseconds=1)

_BYTES_TAG = "__session_bytes_b64__"
_DATETIME_TAG = "__session_datetime__"
_TIMEDELTA_TAG = "__session_timedelta_us__"
_TUPLE_TAG = "__session_tuple__"
_SET_TAG = "__session_set__"
_FROZENSET_TAG = "__session_frozenset__"


class ModelHandler(jsonpickle.handlers.BaseHandler):
    """ModelHandler.
    Flattens datamodel instances through their __dict__.
    """
    def flatten(self, obj, data):
        data['__dict__'] = self.context.flatten(obj.__dict__, reset=False)
        return data

    def restore(self, obj):
        mdl = loadclass(obj['py/object'])
        instance = mdl.__new__(mdl)
        instance.__dict__ = self.context.restore(obj['__dict__'], reset=False)
        return instance


jsonpickle.handlers.registry.register(BaseModel, ModelHandler, base=True)
if PydanticBaseModel:
    jsonpickle.handlers.registry.register(PydanticBaseModel, ModelHandler, base=True)


def to_microseconds(value: datetime) -> int:
    return (value - EPOCH) // _ONE_MICROSECOND


def from_microseconds(value: int) -> datetime:
    try:
        return EPOCH + timedelta(microseconds=value)
    except OverflowError as err:
        raise MalformedPayload() from err


class SessionSerializer(ABC):
    """Base class for session serializers.

    Subclasses provide a one-byte ``format_tag`` and the body codec.
    """

    format_tag: int = 0
    name: str = "base"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} format=0x{self.format_tag:02x}>"

    @abstractmethod
    def _dump_body(self, body: dict) -> bytes:
        pass

    @abstractmethod
    def _load_body(self, raw: bytes) -> Any:
        pass

    def can_carry(self, value: Any) -> bool:
        """True when ``value`` survives ``dumps`` then ``loads`` unchanged."""
        return is_serializable(value)

    def dumps(self, session: SessionData) -> bytes:
        session.route_with(self.can_carry)
        body = self._dump_body({
            "id": session.session_id,
            "identity": session.identity,
            "created": session.created,
            "data": session.session_data(),
        })
        header = _HEADER.pack(
            self.format_tag,
            to_microseconds(session.expires_at),
            len(body),
        )
        return header + body

    def _split(self, payload: bytes) -> tuple[datetime, bytes]:
        if len(payload) < HEADER_SIZE:
            raise MalformedPayload()
        tag, expires_us, length = _HEADER.unpack_from(payload)
        if tag != self.format_tag:
            raise MalformedPayload()
        if len(payload) != HEADER_SIZE + length:
            raise MalformedPayload()
        return from_microseconds(expires_us), payload[HEADER_SIZE:]

    def read_expiry(self, payload: bytes) -> datetime:
        """Return ``expires_at`` from the frame header without touching the body."""
        expires_at, _ = self._split(payload)
        return expires_at

    def loads(self, payload: bytes) -> SessionData:
        expires_at, raw = self._split(payload)
        body = self._load_body(raw)
        if not isinstance(body, dict):
            raise MalformedPayload()
        session_id = body.get("id")
        created = body.get("created")
        data = body.get("data")
        if (
            not isinstance(session_id, str)
            or not isinstance(created, int)
            or isinstance(created, bool)
            or not isinstance(data, dict)
        ):
            raise MalformedPayload()
        return SessionData(
            expires_at=expires_at,
            data=data,
            id=session_id,
            identity=body.get("identity"),
            created=created,
            carry=self.can_carry,
        )


def _orjson_default(obj: Any) -> Any:
    if isinstance(obj, bytearray):
        return {_BYTES_TAG: base64.b64encode(obj).decode("ascii")}
    if isinstance(obj, BaseModel):
        return obj.to_dict()
    if PydanticBaseModel and isinstance(obj, PydanticBaseModel):
        return obj.model_dump(mode="json")
    raise TypeError(f"Type {type(obj).__name__} is not session serializable")


def _pack(value: Any) -> Any:
    """Replace the types JSON cannot tell apart with tagged objects."""
    if isinstance(value, bytes):
        return {_BYTES_TAG: base64.b64encode(value).decode("ascii")}
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, timedelta):
        return {_TIMEDELTA_TAG: value // _ONE_MICROSECOND}
    if isinstance(value, dict):
        return {k: _pack(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_pack(v) for v in value]
    if isinstance(value, tuple):
        return {_TUPLE_TAG: [_pack(v) for v in value]}
    if isinstance(value, frozenset):
        return {_FROZENSET_TAG: [_pack(v) for v in value]}
    if isinstance(value, set):
        return {_SET_TAG: [_pack(v) for v in value]}
    return value


def _restore_bytes(inner: Any) -> bytes:
    if not isinstance(inner, str):
        raise MalformedPayload()
    try:
        return base64.b64decode(inner, validate=True)
    except ValueError as err:
        raise MalformedPayload() from err


def _restore_datetime(inner: Any) -> datetime:
    if not isinstance(inner, str):
        raise MalformedPayload()
    try:
        return datetime.fromisoformat(inner)
    except ValueError as err:
        raise MalformedPayload() from err


def _restore_timedelta(inner: Any) -> timedelta:
    if not isinstance(inner, int) or isinstance(inner, bool):
        raise MalformedPayload()
    try:
        return timedelta(microseconds=inner)
    except OverflowError as err:
        raise MalformedPayload() from err


def _items_restorer(kind: type):
    def restore(inner: Any) -> Any:
        if not isinstance(inner, list):
            raise MalformedPayload()
        try:
            return kind(_unpack(v) for v in inner)
        except TypeError as err:  # unhashable set member
            raise MalformedPayload() from err
    return restore


_RESTORERS = {
    _BYTES_TAG: _restore_bytes,
    _DATETIME_TAG: _restore_datetime,
    _TIMEDELTA_TAG: _restore_timedelta,
    _TUPLE_TAG: _items_restorer(tuple),
    _SET_TAG: _items_restorer(set),
    _FROZENSET_TAG: _items_restorer(frozenset),
}


def _unpack(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1:
            (tag, inner), = value.items()
            restore = _RESTORERS.get(tag)
            if restore is not None:
                return restore(inner)
        return {k: _unpack(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unpack(v) for v in value]
    return value


class OrjsonSerializer(SessionSerializer):
    format_tag = 0x01
    name = "orjson"

    def can_carry(self, value: Any) -> bool:
        return is_serializable(value, models=False)

    def _dump_body(self, body: dict) -> bytes:
        return orjson.dumps(_pack(body), default=_orjson_default)

    def _load_body(self, raw: bytes) -> Any:
        try:
            parsed = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise MalformedPayload() from err
        return _unpack(parsed)


class JsonPickleSerializer(SessionSerializer):
    format_tag = 0x02
    name = "jsonpickle"

    def _dump_body(self, body: dict) -> bytes:
        return jsonpickle.encode(body).encode("utf-8")

    def _load_body(self, raw: bytes) -> Any:
        try:
            return jsonpickle.decode(raw.decode("utf-8"))
        except Exception as err:  # jsonpickle raises anything its restorers raise
            raise MalformedPayload() from err


SERIALIZERS: dict[str, type[SessionSerializer]] = {
    OrjsonSerializer.name: OrjsonSerializer,
    JsonPickleSerializer.name: JsonPickleSerializer,
}


def get_serializer(name: str) -> SessionSerializer:
    try:
        return SERIALIZERS[name]()
    except KeyError:
        raise ValueError(f"Unsupported session serializer: {name}") from None
