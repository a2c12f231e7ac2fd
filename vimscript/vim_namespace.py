"""
Scope-qualified symbol tables.

A `Namespace` stores one kind of symbol (variables, or functions) across
six scopes selected by a sigil prefix:

    g:name   Global
    b:name   Buffer   (per active buffer id)
    w:name   Window   (per active window id)
    s:name   Script   (per active script id)
    v:name   Builtin  (read-only to scripts)
    name     Local    (Global when the name starts with an uppercase letter)

Local is a stack of frames. Function calls push *barrier* frames: a lookup
walks frames innermost-first and stops at the first barrier, then falls
back to Builtin. Loop frames are transparent, and when no barrier is on
the stack (top-level script code) an unprefixed name also reaches Global.
"""

from enum import Enum
from typing import Any, Dict, Hashable, List, Optional, Tuple

from vimscript.vim_errors import NamespaceNotDefined, ReadOnlyNamespace, UnknownNamespace


class Scope(Enum):
    GLOBAL = "g"
    BUFFER = "b"
    WINDOW = "w"
    SCRIPT = "s"
    LOCAL = "l"
    BUILTIN = "v"


_SIGILS = {
    "g": Scope.GLOBAL,
    "b": Scope.BUFFER,
    "w": Scope.WINDOW,
    "s": Scope.SCRIPT,
    "v": Scope.BUILTIN,
}


def resolve(name: str) -> Tuple[Scope, str]:
    """Maps a possibly-prefixed name to (scope, bare name).

    Pure prefix dispatch; it never consults stored state.
    """
    if len(name) >= 2 and name[1] == ":":
        scope = _SIGILS.get(name[0])
        if scope is None:
            raise UnknownNamespace(name)
        return scope, name[2:]
    if ":" in name:
        raise UnknownNamespace(name)
    if name[:1].isupper():
        return Scope.GLOBAL, name
    return Scope.LOCAL, name


class _Frame:
    __slots__ = ("bindings", "barrier")

    def __init__(self, barrier: bool):
        self.bindings: Dict[str, Any] = {}
        self.barrier = barrier


class Namespace:
    """One symbol table partitioned into the six scopes."""

    def __init__(self):
        self.global_: Dict[str, Any] = {}
        self.builtin: Dict[str, Any] = {}
        self._per_id: Dict[Scope, Dict[Hashable, Dict[str, Any]]] = {
            Scope.BUFFER: {},
            Scope.WINDOW: {},
            Scope.SCRIPT: {},
        }
        self._active: Dict[Scope, Optional[Hashable]] = {
            Scope.BUFFER: None,
            Scope.WINDOW: None,
            Scope.SCRIPT: None,
        }
        self._frames: List[_Frame] = []

    # --- Host identities ---

    def set_buffer(self, id_: Optional[Hashable]):
        self._active[Scope.BUFFER] = id_

    def set_window(self, id_: Optional[Hashable]):
        self._active[Scope.WINDOW] = id_

    def set_script(self, id_: Optional[Hashable]):
        self._active[Scope.SCRIPT] = id_

    def active_id(self, scope: Scope) -> Optional[Hashable]:
        return self._active.get(scope)

    # --- Local frames ---

    def enter_local(self, barrier: bool = True):
        self._frames.append(_Frame(barrier))

    def leave_local(self):
        self._frames.pop()

    @property
    def depth(self) -> int:
        return len(self._frames)

    def _visible_frames(self):
        """Frames searched for an unprefixed name, innermost-first.

        The second value is True when no barrier was hit, i.e. the
        lookup may continue into Global.
        """
        frames = []
        for frame in reversed(self._frames):
            frames.append(frame)
            if frame.barrier:
                return frames, False
        return frames, True

    def _table(self, scope: Scope, create: bool) -> Optional[Dict[str, Any]]:
        if scope is Scope.GLOBAL:
            return self.global_
        if scope is Scope.BUILTIN:
            return self.builtin
        id_ = self._active[scope]
        if id_ is None:
            raise NamespaceNotDefined(scope.name.lower())
        tables = self._per_id[scope]
        if create:
            return tables.setdefault(id_, {})
        return tables.get(id_)

    # --- Access ---

    def get(self, name: str, default: Any = None) -> Any:
        found, value = self.find(name)
        return value if found else default

    def find(self, name: str) -> Tuple[bool, Any]:
        """Returns (found, value) so a stored Nil is distinguishable."""
        scope, bare = resolve(name)
        if scope is Scope.LOCAL:
            frames, open_to_global = self._visible_frames()
            for frame in frames:
                if bare in frame.bindings:
                    return True, frame.bindings[bare]
            if open_to_global and bare in self.global_:
                return True, self.global_[bare]
            if bare in self.builtin:
                return True, self.builtin[bare]
            return False, None
        table = self._table(scope, create=False)
        if table is not None and bare in table:
            return True, table[bare]
        return False, None

    def __contains__(self, name: str) -> bool:
        return self.find(name)[0]

    def insert(self, name: str, value: Any):
        """Binds a name. Unprefixed names update the nearest visible owner."""
        scope, bare = resolve(name)
        if scope is Scope.BUILTIN:
            raise ReadOnlyNamespace(name)
        if scope is Scope.LOCAL:
            self._local_table_for(bare)[bare] = value
            return
        self._table(scope, create=True)[bare] = value

    def declare(self, name: str, value: Any):
        """Binds an unprefixed name in the innermost frame, shadowing outer ones."""
        scope, bare = resolve(name)
        if scope is not Scope.LOCAL or not self._frames:
            self.insert(name, value)
            return
        self._frames[-1].bindings[bare] = value

    def _local_table_for(self, bare: str) -> Dict[str, Any]:
        frames, open_to_global = self._visible_frames()
        for frame in frames:
            if bare in frame.bindings:
                return frame.bindings
        # New names belong to the function frame, or to Global at top level.
        if open_to_global:
            return self.global_
        return frames[-1].bindings

    def remove(self, name: str) -> bool:
        """Deletes a binding; returns False when the name was not bound."""
        scope, bare = resolve(name)
        if scope is Scope.BUILTIN:
            raise ReadOnlyNamespace(name)
        if scope is Scope.LOCAL:
            frames, open_to_global = self._visible_frames()
            for frame in frames:
                if bare in frame.bindings:
                    del frame.bindings[bare]
                    return True
            if open_to_global and bare in self.global_:
                del self.global_[bare]
                return True
            return False
        table = self._table(scope, create=False)
        if table is None or bare not in table:
            return False
        del table[bare]
        return True

    def insert_builtin(self, name: str, value: Any) -> Any:
        """Registers a builtin (host or engine side); returns the replaced entry."""
        previous = self.builtin.get(name)
        self.builtin[name] = value
        return previous
