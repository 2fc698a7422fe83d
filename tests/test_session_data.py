"""
Tests for SessionData, the value carried inside the cookie.

Tests cover:
- Serializable data storage (_data) versus in-memory objects (_objects)
- Magic methods (__getitem__, __setitem__, __getattr__, __setattr__, etc.)
- Expiry, renewal and invalidation
- Routing by the serializer predicate (is_serializable / route_with)
"""
import pytest
from datetime import datetime, timedelta, timezone
from datamodel import BaseModel

from navigator_cookie_session.data import SessionData, as_utc, is_serializable


EXPIRES = datetime(2030, 1, 1, tzinfo=timezone.utc)


# --- Test Fixtures ---

class DummyManager:
    """Non-serializable class for testing in-memory storage."""
    def __init__(self, name: str = "default"):
        self.name = name
        self.data = {}

    def add(self, key: str, value):
        self.data[key] = value


class UserModel(BaseModel):
    """Serializable datamodel for testing."""
    username: str
    email: str
    age: int = 0


@pytest.fixture
def session():
    """Create a fresh SessionData instance."""
    return SessionData(expires_at=EXPIRES)


@pytest.fixture
def session_with_data():
    """Create a SessionData instance with initial data."""
    return SessionData(expires_at=EXPIRES, data={
        'name': 'test_session',
        'count': 42,
        'active': True
    })


# --- Test Session Initialization ---

class TestSessionInitialization:
    """Tests for SessionData initialization."""

    def test_empty_session_creation(self, session):
        assert session.empty is True
        assert len(session) == 0
        assert session.new is False

    def test_session_with_initial_data(self, session_with_data):
        assert session_with_data.empty is False
        assert session_with_data['name'] == 'test_session'
        assert session_with_data['count'] == 42
        assert session_with_data['active'] is True

    def test_session_id_is_generated(self, session):
        assert session.session_id is not None
        assert len(session.session_id) > 0

    def test_session_with_custom_id(self):
        session = SessionData(expires_at=EXPIRES, id="my-custom-session-id")
        assert session.session_id == "my-custom-session-id"

    def test_session_identity(self):
        session = SessionData(expires_at=EXPIRES, identity="user123")
        assert session.identity == "user123"

    def test_session_created_timestamp(self, session):
        assert isinstance(session.created, int)

    def test_expires_at_is_required(self):
        with pytest.raises(TypeError):
            SessionData()

    def test_expires_at_must_be_datetime(self):
        with pytest.raises(TypeError):
            SessionData(expires_at=1700000000)

    def test_naive_expires_at_is_utc(self):
        session = SessionData(expires_at=datetime(2030, 1, 1))
        assert session.expires_at == EXPIRES
        assert session.expires_at.tzinfo is not None

    def test_create_sets_expiry_from_max_age(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        session = SessionData.create(now, 3600, data={'user_id': 42})
        assert session.new is True
        assert session.is_changed is True
        assert session.expires_at == now + timedelta(seconds=3600)
        assert session.created == int(now.timestamp())
        assert session['user_id'] == 42


# --- Test Serializable Data Storage (_data) ---

class TestSerializableDataStorage:
    """Tests for serializable data stored in _data."""

    @pytest.mark.parametrize('value', [
        'test', 100, 19.99, True, None, b'raw', [1, 2, 3, 'four'],
        {'key': 'value', 'nested': {'a': 1}},
    ])
    def test_store_primitive(self, session, value):
        session['value'] = value
        assert session['value'] == value
        assert 'value' in session._data
        assert 'value' not in session._objects

    def test_store_datetime(self, session):
        now = datetime.now(timezone.utc)
        session['timestamp'] = now
        assert session['timestamp'] == now
        assert 'timestamp' in session._data

    def test_store_datamodel(self, session):
        user = UserModel(username='john', email='john@example.com', age=30)
        session['user'] = user
        assert session['user'] == user
        assert 'user' in session._data
        assert 'user' not in session._objects


# --- Test In-Memory Object Storage (_objects) ---

class TestInMemoryObjectStorage:
    """Tests for non-serializable objects stored in _objects."""

    def test_store_class_instance(self, session):
        manager = DummyManager(name='test_manager')
        session['manager'] = manager
        assert session['manager'] is manager
        assert 'manager' in session._objects
        assert 'manager' not in session._data

    def test_modify_retrieved_object(self, session):
        session['dm'] = DummyManager()
        session['dm'].add('test', 123)
        assert session['dm'].data == {'test': 123}

    def test_in_memory_not_in_session_data(self, session):
        session['name'] = 'test'
        session['manager'] = DummyManager()

        data = session.session_data()
        assert 'name' in data
        assert 'manager' not in data
        assert 'manager' in session.session_objects()


# --- Test Attribute-Style Access ---

class TestAttributeStyleAccess:
    """Tests for attribute-style access (session.key)."""

    def test_set_serializable_via_attribute(self, session):
        session.username = 'alice'
        assert session.username == 'alice'
        assert 'username' in session._data

    def test_set_object_via_attribute(self, session):
        manager = DummyManager()
        session.dm = manager
        assert session.dm is manager
        assert 'dm' in session._objects

    def test_attribute_error_for_missing(self, session):
        with pytest.raises(AttributeError):
            _ = session.nonexistent

    def test_properties_are_not_routed_to_storage(self, session):
        later = EXPIRES + timedelta(days=1)
        session.expires_at = later
        session.identity = 'bob'
        assert session.expires_at == later
        assert session.identity == 'bob'
        assert 'expires_at' not in session._data
        assert 'identity' not in session._data


# --- Test Magic Methods ---

class TestMagicMethods:
    """Tests for dict-like magic methods."""

    def test_getitem_keyerror(self, session):
        with pytest.raises(KeyError):
            _ = session['nonexistent']

    def test_delitem(self, session):
        session['name'] = 'test'
        session['dm'] = DummyManager()
        del session['name']
        del session['dm']
        assert 'name' not in session
        assert 'dm' not in session

    def test_delitem_keyerror(self, session):
        with pytest.raises(KeyError):
            del session['nonexistent']

    def test_len_and_iter_include_both(self, session):
        session['a'] = 1
        session['b'] = DummyManager()
        session['c'] = 'three'

        assert len(session) == 3
        assert set(session) == {'a', 'b', 'c'}

    def test_get_method(self, session):
        session['exists'] = 'value'
        assert session.get('exists') == 'value'
        assert session.get('missing') is None
        assert session.get('missing', 'default') == 'default'

    def test_equality_ignores_in_memory_objects(self):
        one = SessionData(expires_at=EXPIRES, id='abc', created=10, data={'a': 1})
        two = SessionData(expires_at=EXPIRES, id='abc', created=10, data={'a': 1})
        two['dm'] = DummyManager()
        assert one == two
        two['a'] = 2
        assert one != two


# --- Test Session State ---

class TestSessionState:
    """Tests for session state management."""

    def test_changed_flag_on_serializable_set(self, session):
        assert session.is_changed is False
        session['name'] = 'test'
        assert session.is_changed is True

    def test_changed_flag_not_set_on_object(self, session):
        session['dm'] = DummyManager()
        assert session.is_changed is False

    def test_changed_flag_on_delete(self, session):
        session['name'] = 'test'
        session.is_changed = False
        del session['name']
        assert session.is_changed is True

    def test_invalidate_clears_both(self, session):
        session['name'] = 'test'
        session['dm'] = DummyManager()

        session.invalidate()

        assert session.empty is True
        assert session.invalidated is True
        assert session.is_changed is True

    def test_expiry_is_inclusive(self, session):
        assert session.is_expired(EXPIRES - timedelta(seconds=1)) is False
        assert session.is_expired(EXPIRES) is False
        assert session.is_expired(EXPIRES + timedelta(microseconds=1)) is True

    def test_renew(self, session):
        now = datetime(2029, 12, 31, 23, 0, tzinfo=timezone.utc)
        assert session.remaining(now) == timedelta(hours=1)
        session.renew(now, 7200)
        assert session.expires_at == now + timedelta(seconds=7200)
        assert session.is_changed is True

    def test_as_utc_converts_offsets(self):
        eastern = timezone(timedelta(hours=-5))
        value = datetime(2024, 1, 1, 7, 0, tzinfo=eastern)
        assert as_utc(value) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


# --- Test Serializer Routing ---

class TestSerializerRouting:
    """Tests for the predicate deciding what is written into the cookie."""

    @pytest.mark.parametrize('value', [
        (1, 'a'),
        {1, 2},
        frozenset({'x'}),
        timedelta(minutes=5),
        {'nested': [(1, b'\x00'), {'at': EXPIRES}]},
    ])
    def test_rich_values_are_stored(self, session, value):
        session['value'] = value
        assert 'value' in session._data

    @pytest.mark.parametrize('value', [
        {1: 'a'},
        {'inner': {(1, 2): 'pair'}},
        2 ** 64,
        bytearray(b'raw'),
        {'__session_tuple__': [1]},
        [DummyManager()],
    ])
    def test_unwritable_values_stay_in_memory(self, session, value):
        session['value'] = value
        assert 'value' in session._objects
        assert 'value' not in session._data
        assert session['value'] is value

    def test_constructor_data_is_routed(self):
        session = SessionData(expires_at=EXPIRES, data={'scores': {1: 'a'}, 'n': 1})
        assert 'scores' in session._objects
        assert session.session_data() == {'n': 1}
        assert session.is_changed is False

    def test_models_depend_on_predicate(self):
        user = UserModel(username='ann', email='ann@example.com')
        assert is_serializable(user) is True
        assert is_serializable(user, models=False) is False

    def test_route_with_moves_rejected_values(self, session):
        user = UserModel(username='ann', email='ann@example.com')
        session['user'] = user
        session['name'] = 'ann'
        session.route_with(lambda value: is_serializable(value, models=False))
        assert session.session_data() == {'name': 'ann'}
        assert session['user'] is user
        session['other'] = user
        assert 'other' in session._objects


class TestRepr:

    def test_repr_with_data(self, session):
        session['name'] = 'test'
        session['dm'] = DummyManager()

        repr_str = repr(session)
        assert 'NAV-Session' in repr_str
        assert 'name' in repr_str
        assert 'dm' in repr_str
