import uuid
from typing import Optional, Any
from datetime import datetime, timedelta, timezone
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from datamodel import BaseModel
try:
    from pydantic import BaseModel as PydanticBaseModel
except ImportError:
    PydanticBaseModel = None

from .conf import RESERVED_KEY_PREFIX

_INT64_MIN = -(2 ** 63)
_UINT64_MAX = 2 ** 64 - 1


def is_serializable(value: Any, models: bool = True) -> bool:
    """Check if a value can be written into the cookie and read back equal.

    Covers None, bool, int (64-bit), float, str, bytes, datetime, timedelta,
    dicts with str keys, lists, tuples, sets and frozensets of those.
    datamodel and pydantic models only count when ``models`` is True.
    Anything else (class instances, functions, etc.) must stay in memory.
    """
    if value is None or isinstance(value, (bool, float, str, bytes)):
        return True
    if isinstance(value, int):
        return _INT64_MIN <= value <= _UINT64_MAX
    if isinstance(value, (datetime, timedelta)):
        return True
    if isinstance(value, dict):
        return all(
            isinstance(k, str)
            and not k.startswith(RESERVED_KEY_PREFIX)
            and is_serializable(v, models)
            for k, v in value.items()
        )
    if isinstance(value, (list, tuple, set, frozenset)):
        return all(is_serializable(v, models) for v in value)
    if models:
        if isinstance(value, BaseModel):
            return True
        if PydanticBaseModel and isinstance(value, PydanticBaseModel):
            return True
    return False


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SessionData(MutableMapping[str, Any]):
    """Session dict-like object carried inside the cookie.

    Every session has an absolute ``expires_at`` (UTC). Serializable data
    is stored in _data and written into the cookie; in-memory objects
    (class instances, etc.) are stored in _objects and only live for the
    current request. What counts as serializable is decided by ``carry``,
    the predicate of the serializer that writes the session.
    """

    _data: dict[str, Any]
    _objects: dict[str, Any]

    # Internal attributes that should not be stored in _data or _objects
    _internal_attrs = frozenset({
        '_data', '_objects', '_changed', '_id_', '_identity', '_new',
        '_expires_at', '_created', '_invalidated', '_carry', 'args'
    })

    def __init__(
        self,
        *args,
        expires_at: datetime,
        data: Optional[Mapping[str, Any]] = None,
        new: bool = False,
        id: Optional[str] = None,
        identity: Optional[Any] = None,
        created: Optional[int] = None,
        carry: Optional[Callable[[Any], bool]] = None
    ) -> None:
        # Initialize internal storage first (before any attribute access)
        object.__setattr__(self, '_data', {})
        object.__setattr__(self, '_objects', {})
        object.__setattr__(self, '_carry', carry or is_serializable)
        # If new, mark as changed so it gets written
        object.__setattr__(self, '_changed', True if new else False)
        object.__setattr__(self, '_invalidated', False)
        if not isinstance(expires_at, datetime):
            raise TypeError(
                f"expires_at must be a datetime, got {type(expires_at).__name__}"
            )
        self._expires_at = as_utc(expires_at)
        # Unique ID:
        self._id_ = id or uuid.uuid4().hex
        # Session Identity
        self._identity = identity
        self._new = new
        now = int(datetime.now(timezone.utc).timestamp())
        self._created = now if created is None else int(created)
        ## Data updating.
        if data is not None:
            for key, value in data.items():
                self._set_value(key, value)
            self._changed = new
        self.args = args

    @classmethod
    def create(
        cls,
        now: datetime,
        max_age: int,
        data: Optional[Mapping[str, Any]] = None,
        identity: Optional[Any] = None,
        carry: Optional[Callable[[Any], bool]] = None
    ) -> 'SessionData':
        """Build a brand new session expiring ``max_age`` seconds after ``now``."""
        now = as_utc(now)
        return cls(
            expires_at=now + timedelta(seconds=max_age),
            data=data,
            new=True,
            identity=identity,
            created=int(now.timestamp()),
            carry=carry
        )

    def __repr__(self) -> str:
        return (
            f'<NAV-Session [new:{self.new}, expires_at:{self.expires_at.isoformat()}] '
            f'data={self._data!r}, objects={list(self._objects.keys())}>'
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SessionData):
            return NotImplemented
        return (
            self._id_ == other._id_
            and self._identity == other._identity
            and self._created == other._created
            and self._expires_at == other._expires_at
            and self._data == other._data
        )

    __hash__ = None

    # --- Serialization helpers ---

    def _is_serializable(self, value: Any) -> bool:
        return self._carry(value)

    def route_with(self, carry: Callable[[Any], bool]) -> None:
        """Switch to the ``carry`` predicate of another serializer.

        Stored values the new predicate rejects move to in-memory storage.
        """
        self._carry = carry
        for key in [k for k, v in self._data.items() if not carry(v)]:
            self._objects[key] = self._data.pop(key)

    def _get_value(self, key: str) -> Any:
        """Unified getter that checks both _objects and _data."""
        if key in self._objects:
            return self._objects[key]
        if key in self._data:
            return self._data[key]
        raise KeyError(key)

    def _set_value(self, key: str, value: Any) -> None:
        """Unified setter that routes to _objects or _data based on serializability."""
        if self._is_serializable(value):
            self._objects.pop(key, None)
            self._data[key] = value
            self._changed = True
        else:
            # in-memory only, never written into the cookie
            self._data.pop(key, None)
            self._objects[key] = value

    def _del_value(self, key: str) -> None:
        """Unified delete that removes from both _objects and _data."""
        deleted = False
        if key in self._objects:
            del self._objects[key]
            deleted = True
        if key in self._data:
            del self._data[key]
            self._changed = True
            deleted = True
        if not deleted:
            raise KeyError(key)

    def _has_value(self, key: str) -> bool:
        """Check if key exists in either _objects or _data."""
        return key in self._objects or key in self._data

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def identity(self) -> Optional[Any]:  # type: ignore[misc]
        return self._identity

    @identity.setter
    def identity(self, value: Optional[Any]) -> None:
        self._identity = value
        self._changed = True

    @property
    def created(self) -> int:
        return self._created

    @property
    def expires_at(self) -> datetime:
        return self._expires_at

    @expires_at.setter
    def expires_at(self, value: datetime) -> None:
        self._expires_at = as_utc(value)
        self._changed = True

    @property
    def empty(self) -> bool:
        return not bool(self._data) and not bool(self._objects)

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    def changed(self) -> None:
        self._changed = True

    def is_expired(self, now: datetime) -> bool:
        """A session is valid up to and including ``expires_at``."""
        return as_utc(now) > self._expires_at

    def remaining(self, now: datetime) -> timedelta:
        return self._expires_at - as_utc(now)

    def renew(self, now: datetime, max_age: int) -> None:
        """Push ``expires_at`` to ``max_age`` seconds after ``now``."""
        self.expires_at = as_utc(now) + timedelta(seconds=max_age)

    def session_data(self) -> dict:
        """Return only serializable data (what goes into the cookie)."""
        return self._data

    def session_objects(self) -> dict:
        """Return in-memory objects (never written into the cookie)."""
        return self._objects

    def invalidate(self) -> None:
        """Clear all session data and in-memory objects."""
        self._changed = True
        self._invalidated = True
        self._data = {}
        self._objects = {}

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data) + len(self._objects)

    def __iter__(self) -> Iterator[str]:
        # Iterate over both _data and _objects keys
        seen = set()
        for key in self._data:
            seen.add(key)
            yield key
        for key in self._objects:
            if key not in seen:
                yield key

    def __contains__(self, key: object) -> bool:
        return self._has_value(str(key))

    def __getitem__(self, key: str) -> Any:
        return self._get_value(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self._set_value(key, value)

    def __delitem__(self, key: str) -> None:
        self._del_value(key)

    def __getattr__(self, key: str) -> Any:
        # Avoid infinite recursion for internal attributes
        if key.startswith('_'):
            raise AttributeError(key)
        try:
            return self._get_value(key)
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        # Handle internal attributes and properties normally
        if (
            key in self._internal_attrs
            or key.startswith('_')
            or isinstance(getattr(type(self), key, None), property)
        ):
            object.__setattr__(self, key, value)
        else:
            self._set_value(key, value)
