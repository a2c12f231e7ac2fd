"""
Error taxonomy for the vimscript runtime.

Every fault raised by the engine derives from `VimError`, grouped into
structural, namespace, value, lookup, arity and resource families. `Exit`
is not an error: it is the sentinel raised by `finish`/`exit` and
downgraded to success by a top-level `run()`.
"""


class VimError(Exception):
    """Base class for every fault surfaced by the runtime."""
    pass


class VimIOError(VimError):
    """A host-side read (e.g. loading a script file) failed."""
    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


# -----------------------------------------------------------------
# Structural faults
# -----------------------------------------------------------------

class StructuralError(VimError):
    pass


class UnexpectedKeyword(StructuralError):
    def __init__(self, keyword: str):
        super().__init__(keyword)
        self.keyword = keyword


class UnexpectedEof(StructuralError):
    def __init__(self, section: str = ""):
        super().__init__(f"missing end of {section}" if section else "unexpected end of script")
        self.section = section


class Expected(StructuralError):
    def __init__(self, token: str):
        super().__init__(token)
        self.token = token


class CallDepthExceeded(StructuralError):
    """User functions nested deeper than the context allows."""
    def __init__(self, limit: int | None = None):
        super().__init__(f"function call depth exceeded {limit}" if limit else "function call depth exceeded")
        self.limit = limit


# -----------------------------------------------------------------
# Namespace faults
# -----------------------------------------------------------------

class NamespaceError(VimError):
    pass


class NamespaceNotDefined(NamespaceError):
    """A buffer/window/script scope was used before the host set its id."""
    def __init__(self, namespace: str):
        super().__init__(namespace)
        self.namespace = namespace


class UnknownNamespace(NamespaceError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


class ReadOnlyNamespace(NamespaceError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


# -----------------------------------------------------------------
# Value faults
# -----------------------------------------------------------------

class ValueFault(VimError):
    pass


class UnterminatedString(ValueFault):
    def __init__(self, text: str = ""):
        super().__init__(text)
        self.text = text


class UnexpectedSymbol(ValueFault):
    def __init__(self, symbol: str):
        super().__init__(symbol)
        self.symbol = symbol


class InvalidExpression(ValueFault):
    def __init__(self, expr: str):
        super().__init__(expr)
        self.expr = expr


class ExpectedType(ValueFault):
    def __init__(self, kind: str, got: str = ""):
        super().__init__(f"{kind} (got {got})" if got else kind)
        self.kind = kind
        self.got = got


class NotABool(ValueFault):
    def __init__(self, got: str = ""):
        super().__init__(got)
        self.got = got


class DivisionByZero(ValueFault):
    def __init__(self):
        super().__init__("division by zero")


class CyclicReference(ValueFault):
    """Inserting a container into itself."""
    def __init__(self, kind: str):
        super().__init__(f"cannot insert a {kind} into itself")
        self.kind = kind


# -----------------------------------------------------------------
# Lookup faults
# -----------------------------------------------------------------

class LookupFault(VimError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


class VariableUndefined(LookupFault):
    pass


class FunctionUndefined(LookupFault):
    pass


class CommandUndefined(LookupFault):
    pass


# -----------------------------------------------------------------
# Arity, resource and control sentinels
# -----------------------------------------------------------------

class WrongArgCount(VimError):
    def __init__(self, expected: int, got: int | None = None):
        msg = f"expected {expected} arguments" + (f", got {got}" if got is not None else "")
        super().__init__(msg)
        self.expected = expected
        self.got = got


class TimeOut(VimError):
    def __init__(self, budget: float):
        super().__init__(f"script exceeded {budget:g}s")
        self.budget = budget


class Exit(VimError):
    """Raised by `finish`/`exit`; `run()` turns it into success."""
    def __init__(self):
        super().__init__("exit")


def is_control_fault(err: BaseException) -> bool:
    """True for faults that must never be swallowed by `silent!`."""
    return isinstance(err, (TimeOut, Exit))
