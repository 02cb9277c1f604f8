"""Conversion of BSON documents to Lua values and back.

Every BSON value maps onto one Lua shape:

* strings, booleans, integers and doubles map to the native Lua types
* binary data becomes a sequence of byte values
* datetimes become milliseconds since the epoch
* ObjectIds become ``{__type = "ObjectId", __value = {12 bytes}, string_repr = hex}``
* documents become tables, arrays become sequence tables whose metatable
  records the array length, so empty arrays and null items survive
* ``None`` becomes ``nil``; regular expressions, decimals, timestamps and the
  min/max keys are handed over as display strings only

The reverse direction turns tagged ObjectId tables back into ``ObjectId``,
array tables (tagged or keyed ``1..n``) into lists and any other table into a
document with string keys.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping

from bson import ObjectId
from bson.datetime_ms import DatetimeMS
from bson.dbref import DBRef
from bson.decimal128 import Decimal128
from bson.int64 import Int64
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.regex import Regex
from bson.timestamp import Timestamp
from lupa import LuaRuntime, lua_type

from bsondissect.errors import InvalidIdentifierError, ScriptError

LOGGER = logging.getLogger(__name__)

OBJECT_ID_TYPE = "ObjectId"
OBJECT_ID_SIZE = 12
MAX_DEPTH = 128

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_ARRAY_HELPERS = """
local marker = {}
local function as_array(t, n) return setmetatable(t, {[marker] = n}) end
local function array_length(t)
  local mt = getmetatable(t)
  if type(mt) == "table" then return rawget(mt, marker) end
  return nil
end
return as_array, array_length
"""


def datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def display_string(value: Any) -> str:
    """Render a BSON value that has no Lua counterpart."""
    if isinstance(value, MinKey):
        return "MinKey"
    if isinstance(value, MaxKey):
        return "MaxKey"
    if isinstance(value, Decimal128):
        return str(value)
    return repr(value)


class LuaMarshaller:
    """Moves values between Python BSON documents and one Lua runtime."""

    def __init__(self, runtime: LuaRuntime) -> None:
        self.runtime = runtime
        self._as_array, self._array_length = runtime.execute(_ARRAY_HELPERS)

    # Python -> Lua

    def to_lua(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, str, float)):
            return value
        if isinstance(value, ObjectId):
            return self.object_id_to_lua(value)
        if isinstance(value, int):
            return int(value)
        if isinstance(value, bytes):
            return self.sequence(list(value))
        if isinstance(value, datetime):
            return datetime_to_millis(value)
        if isinstance(value, DatetimeMS):
            return int(value)
        if isinstance(value, Mapping):
            table = self.runtime.table()
            for key, item in value.items():
                table[str(key)] = self.to_lua(item)
            return table
        if isinstance(value, (list, tuple)):
            return self.sequence([self.to_lua(item) for item in value])
        if isinstance(value, (Regex, Decimal128, Timestamp, MinKey, MaxKey, DBRef)):
            return display_string(value)
        LOGGER.debug("No Lua representation for %s, passing nil", type(value).__name__)
        return None

    def sequence(self, items: List[Any]) -> Any:
        table = self.runtime.table()
        for index, item in enumerate(items, start=1):
            table[index] = item
        # nil items leave holes, the length travels in the metatable
        return self._as_array(table, len(items))

    def object_id_to_lua(self, oid: ObjectId) -> Any:
        table = self.runtime.table()
        table["__type"] = OBJECT_ID_TYPE
        table["__value"] = self.sequence(list(oid.binary))
        table["string_repr"] = str(oid)
        return table

    # Lua -> Python

    def from_lua(self, value: Any, depth: int = 0) -> Any:
        if value is None or isinstance(value, (bool, float, str)):
            return value
        if isinstance(value, int):
            if _INT32_MIN <= value <= _INT32_MAX:
                return value
            return Int64(value)
        if lua_type(value) != "table":
            LOGGER.debug("Dropping unsupported Lua %s value", lua_type(value))
            return None

        if depth > MAX_DEPTH:
            raise ScriptError(f"Table nesting deeper than {MAX_DEPTH} levels (cyclic table?)")
        if value["__type"] == OBJECT_ID_TYPE:
            return self.object_id_from_lua(value)

        items = list(value.items())
        length = self._array_length(value)
        if length is not None and _has_index_keys(items):
            slots: List[Any] = [None] * max([length] + [key for key, _ in items])
            for key, item in items:
                slots[key - 1] = self.from_lua(item, depth + 1)
            return slots
        if _is_sequence(items):
            items.sort(key=lambda pair: pair[0])
            return [self.from_lua(item, depth + 1) for _, item in items]
        return {_key_to_str(key): self.from_lua(item, depth + 1) for key, item in items}

    def table_to_document(self, table: Any) -> Dict[str, Any]:
        """Harvest a top level table; always yields a document."""
        if table["__type"] == OBJECT_ID_TYPE:
            raise ScriptError("The document binding cannot be an ObjectId")
        return {_key_to_str(key): self.from_lua(item, 1) for key, item in table.items()}

    def object_id_from_lua(self, table: Any) -> ObjectId:
        raw = table["__value"]
        if lua_type(raw) != "table":
            raise InvalidIdentifierError("ObjectId table has no byte sequence in __value")

        items = sorted(raw.items(), key=lambda pair: _sort_key(pair[0]))
        if len(items) != OBJECT_ID_SIZE or not _is_sequence(items):
            raise InvalidIdentifierError(
                f"ObjectId must hold exactly {OBJECT_ID_SIZE} bytes, got {len(items)}"
            )
        data = []
        for _, byte in items:
            if isinstance(byte, bool) or not isinstance(byte, int) or not 0 <= byte <= 255:
                raise InvalidIdentifierError(f"Invalid ObjectId byte value {byte!r}")
            data.append(byte)
        return ObjectId(bytes(data))


def _has_index_keys(items: List[Any]) -> bool:
    return all(isinstance(key, int) and not isinstance(key, bool) and key >= 1 for key, _ in items)


def _is_sequence(items: List[Any]) -> bool:
    if not items or not _has_index_keys(items):
        return False
    return sorted(key for key, _ in items) == list(range(1, len(items) + 1))


def _sort_key(key: Any) -> Any:
    return (0, key) if isinstance(key, int) and not isinstance(key, bool) else (1, str(key))


def _key_to_str(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    return str(key)


def restore_key_order(original: Mapping[str, Any], result: Dict[str, Any]) -> Dict[str, Any]:
    """Put keys that survived a script back into their original order.

    Keys added by the script follow in sorted order.
    """
    ordered: Dict[str, Any] = {}
    for key, before in original.items():
        if key in result:
            ordered[key] = _restore_value(before, result[key])
    for key in sorted(k for k in result if k not in ordered):
        ordered[key] = result[key]
    return ordered


def _restore_value(before: Any, after: Any) -> Any:
    if isinstance(before, Mapping) and isinstance(after, dict):
        return restore_key_order(before, after)
    if isinstance(before, list) and isinstance(after, list):
        return [
            _restore_value(old, new) for old, new in zip(before, after)
        ] + after[len(before):]
    return after
