"""Embedded Lua runtime that transforms one document at a time."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

import xxhash
from bson import ObjectId
from lupa import LuaError, LuaRuntime, lua_type
from rich.pretty import pretty_repr

from bsondissect.errors import ScriptError
from bsondissect.scripting.marshal import LuaMarshaller, restore_key_order

LOGGER = logging.getLogger(__name__)
SCRIPT_LOGGER = logging.getLogger("bsondissect.script")

GLOBAL_NAME = "doc"

_LUA_TYPE_NAMES = {
    type(None): "nil",
    bool: "boolean",
    int: "number",
    float: "number",
    str: "string",
}


def fast_hash(text: str) -> str:
    """Hex xxh64 digest of ``text``, for bucketing and dedup in scripts."""
    return format(xxhash.xxh64_intdigest(text.encode("utf-8")), "x")


def _lua_str(value: Any) -> str:
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ScriptBridge:
    """One Lua interpreter exposing a document under the global ``doc``.

    Instances are not thread safe; create one per worker thread.
    """

    def __init__(self) -> None:
        self._lua = LuaRuntime(unpack_returned_tuples=True, register_eval=False)
        self.marshaller = LuaMarshaller(self._lua)
        self._chunks: Dict[str, Any] = {}
        self._register_builtins()

    def _register_builtins(self) -> None:
        g = self._lua.globals()
        g.python = None
        g.print = self._print
        g.println = self._print
        g.dumpTable = self._dump_table
        g.newObjectId = self._new_object_id
        g.fastHash = self._fast_hash

    @staticmethod
    def _print(*args: Any) -> None:
        SCRIPT_LOGGER.info("%s", "\t".join(_lua_str(arg) for arg in args))

    def _dump_table(self, value: Any) -> None:
        SCRIPT_LOGGER.info("%s", pretty_repr(self.marshaller.from_lua(value)))

    def _new_object_id(self) -> Any:
        return self.marshaller.object_id_to_lua(ObjectId())

    @staticmethod
    def _fast_hash(value: Any) -> str:
        return fast_hash(_lua_str(value))

    def _compile(self, source: str) -> Any:
        chunk = self._chunks.get(source)
        if chunk is None:
            try:
                chunk = self._lua.compile(source)
            except LuaError as exc:
                raise ScriptError(f"Script failed to compile: {exc}") from exc
            self._chunks[source] = chunk
        return chunk

    def run(self, document: Mapping[str, Any], script_source: str) -> Dict[str, Any]:
        """Run ``script_source`` against ``document`` and return the harvested result."""
        chunk = self._compile(script_source)
        g = self._lua.globals()
        g[GLOBAL_NAME] = self.marshaller.to_lua(document)
        try:
            chunk()
            result = g[GLOBAL_NAME]
            if lua_type(result) != "table":
                kind = _LUA_TYPE_NAMES.get(type(result)) or lua_type(result) or type(result).__name__
                raise ScriptError(f"Script left '{GLOBAL_NAME}' as {kind}, expected a table")
            harvested = self.marshaller.table_to_document(result)
        except LuaError as exc:
            raise ScriptError(f"Script execution failed: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise ScriptError(f"Script produced a string that is not valid UTF-8: {exc}") from exc
        finally:
            g[GLOBAL_NAME] = None
        return restore_key_order(document, harvested)

    def close(self) -> None:
        self._chunks.clear()
