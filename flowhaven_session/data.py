import uuid
from typing import Optional, Any
from datetime import datetime, timezone
from collections.abc import Iterator, Mapping, MutableMapping
import jsonpickle
from jsonpickle.unpickler import loadclass
from datamodel import BaseModel
from pydantic import BaseModel as PydanticBaseModel
from .conf import (
    SESSION_KEY,
    SESSION_ID,
)


class ModelHandler(jsonpickle.handlers.BaseHandler):
    """ModelHandler.
    Flattens and restores Data Models (datamodel or pydantic) by __dict__.
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
jsonpickle.handlers.registry.register(PydanticBaseModel, ModelHandler, base=True)

_META_KEYS = frozenset({SESSION_ID, SESSION_KEY, 'created'})


class SessionData(MutableMapping[str, Any]):
    """Per-user session object.

    Holds the authenticated user id (``identity``) plus arbitrary values.
    Serializable values live in ``_data`` and are persisted with the
    session; anything else lives in ``_objects`` for this process only.

    Being a mutable mapping, a SessionData can also back the session key
    store, keeping the exported key scoped to this session.
    """

    _internal_attrs = frozenset({
        '_data', '_objects', '_changed', '_id_', '_identity', '_new',
        '_max_age', '_created', 'args'
    })

    def __init__(
        self,
        *args,
        data: Optional[Mapping[str, Any]] = None,
        new: bool = False,
        id: Optional[str] = None,
        identity: Optional[Any] = None,
        max_age: Optional[int] = None
    ) -> None:
        object.__setattr__(self, '_data', {})
        object.__setattr__(self, '_objects', {})
        object.__setattr__(self, '_changed', bool(new))
        self._id_ = (data.get(SESSION_ID) if data else id) or uuid.uuid4().hex
        self._identity = data.get(SESSION_KEY) if data else identity
        self._new = new if data else True
        self._max_age = max_age
        now = int(datetime.now(timezone.utc).timestamp())
        created = data.get('created') if data else None
        if created is not None and max_age is not None and now - created > max_age:
            # expired: start over with a fresh, anonymous session
            data = None
            created = None
            self._identity = None
            self._new = True
        self._created = created if created is not None else now
        if data:
            self._data.update(
                {k: v for k, v in data.items() if k not in _META_KEYS}
            )
        self.args = args

    def __repr__(self) -> str:
        return (
            f'<FlowHaven-Session [new:{self.new}, user:{self._identity}] '
            f'keys={list(self._data.keys())}, objects={list(self._objects.keys())}>'
        )

    # --- Serialization helpers ---

    def _is_serializable(self, value: Any) -> bool:
        """True for values that survive a jsonpickle round-trip across processes."""
        if value is None or isinstance(value, (bool, int, float, str, bytes, datetime)):
            return True
        if isinstance(value, dict):
            return all(self._is_serializable(v) for v in value.values())
        if isinstance(value, (list, tuple, set, frozenset)):
            return all(self._is_serializable(v) for v in value)
        return isinstance(value, (BaseModel, PydanticBaseModel))

    def _set_value(self, key: str, value: Any) -> None:
        if self._is_serializable(value):
            self._objects.pop(key, None)
            self._data[key] = value
            self._changed = True
        else:
            self._data.pop(key, None)
            self._objects[key] = value

    def _del_value(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._changed = True
        elif key in self._objects:
            del self._objects[key]
        else:
            raise KeyError(key)

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def identity(self) -> Optional[Any]:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def created(self) -> int:
        return self._created

    @property
    def empty(self) -> bool:
        return not self._data and not self._objects

    @property
    def max_age(self) -> Optional[int]:
        return self._max_age

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    def session_data(self) -> dict:
        """Return the persistable state, identity and id included."""
        return {
            **self._data,
            SESSION_ID: self._id_,
            SESSION_KEY: self._identity,
            'created': self._created,
        }

    def session_objects(self) -> dict:
        return self._objects

    def invalidate(self) -> None:
        """Log the session out: drop identity, data and objects."""
        self._changed = True
        self._identity = None
        self._data = {}
        self._objects = {}

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data) + len(self._objects)

    def __iter__(self) -> Iterator[str]:
        yield from self._data
        yield from (k for k in self._objects if k not in self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._objects or key in self._data

    def __getitem__(self, key: str) -> Any:
        if key in self._objects:
            return self._objects[key]
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._set_value(key, value)

    def __delitem__(self, key: str) -> None:
        self._del_value(key)

    def __getattr__(self, key: str) -> Any:
        if key.startswith('_'):
            raise AttributeError(key)
        try:
            return self[key]
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        if (
            key in self._internal_attrs
            or key.startswith('_')
            or isinstance(getattr(type(self), key, None), property)
        ):
            object.__setattr__(self, key, value)
        else:
            self._set_value(key, value)

    # --- Encoding ---

    def encode(self) -> str:
        """Encode the persistable session state with jsonpickle.

        Raises:
            RuntimeError: Error converting data to json.
        """
        try:
            return jsonpickle.encode(self.session_data())
        except Exception as err:
            raise RuntimeError(err) from err

    @classmethod
    def decode(cls, payload: str, max_age: Optional[int] = None) -> "SessionData":
        """Rebuild a session from :meth:`encode` output.

        Raises:
            RuntimeError: Error converting data from json.
        """
        try:
            data = jsonpickle.decode(payload)
        except Exception as err:
            raise RuntimeError(err) from err
        if not isinstance(data, dict):
            raise RuntimeError(f"Invalid session payload: {type(data).__name__}")
        session = cls(data=data, max_age=max_age)
        session._changed = False
        return session
