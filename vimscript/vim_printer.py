"""
A pretty-printer for vimscript values.

`Printer().pformat(value)` produces the same text as the `string()`
builtin: strings are quoted, containers are rendered recursively and a
container that is reached again while it is being printed shows as
`[...]` / `{...}`.
"""

from vimscript.vim_datatypes import FuncRef, format_float


class Printer:
    """Formats values into readable vimscript literals."""

    def __init__(self):
        self._handlers = self._create_handlers()
        self._active: set[int] = set()

    def pformat(self, obj) -> str:
        """Public entry point to format a value."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            # Subclasses (e.g. user dict types) fall back to their base.
            for base, h in self._handlers.items():
                if isinstance(obj, base):
                    handler = h
                    break
            else:
                return repr(obj)
        return handler(obj)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            bool: self._pformat_bool,
            int: self._pformat_int,
            float: self._pformat_float,
            type(None): self._pformat_none,
            list: self._pformat_list,
            dict: self._pformat_dict,
            FuncRef: self._pformat_funcref,
        }

    def _pformat_str(self, obj):
        # Single-quoted literal; embedded quotes are doubled.
        return "'" + obj.replace("'", "''") + "'"

    def _pformat_bool(self, obj):
        return "v:true" if obj else "v:false"

    def _pformat_int(self, obj):
        return str(obj)

    def _pformat_float(self, obj):
        return format_float(obj)

    def _pformat_none(self, obj):
        return "v:null"

    def _pformat_funcref(self, obj):
        return f"function('{obj.name}')"

    def _pformat_list(self, obj):
        if id(obj) in self._active:
            return "[...]"
        self._active.add(id(obj))
        try:
            return "[" + ", ".join(self.pformat(item) for item in obj) + "]"
        finally:
            self._active.discard(id(obj))

    def _pformat_dict(self, obj):
        if id(obj) in self._active:
            return "{...}"
        self._active.add(id(obj))
        try:
            items = (f"{self._pformat_str(str(k))}: {self.pformat(v)}" for k, v in obj.items())
            return "{" + ", ".join(items) + "}"
        finally:
            self._active.discard(id(obj))
