"""Value codec — round-trips function values through string-only storage.

``encode`` replaces every Python function found in a value (at any nesting
depth inside lists, tuples and dicts) with its literal source text.
``decode`` walks stored data and turns strings that are *function literals*
back into callables.

Decoding never evaluates arbitrary code.  A string is only reconstructed when
it is a single ``lambda`` expression or a single undecorated ``def`` whose
syntax tree passes a confinement check:

* no imports, ``global``/``nonlocal``, classes, ``async``/``await`` or
  generators;
* attribute access is limited to the plain data methods in
  :data:`SAFE_ATTRIBUTES`, so frames, code objects and dunders stay out of
  reach;
* every loaded name is a parameter, a name bound inside the function, or one
  of :data:`SAFE_BUILTINS`;
* parameter defaults are literals.

The function object is then built straight from the compiled code object
with a globals mapping that exposes only :data:`SAFE_BUILTINS`.  Closures do
not survive the trip: a function that reads an outer variable encodes fine
but decodes back to its source string.
"""

from __future__ import annotations

import ast
import builtins
import inspect
import logging
import textwrap
import types
from typing import Any

logger = logging.getLogger(__name__)

SAFE_BUILTINS: frozenset[str] = frozenset(
    {
        "abs",
        "all",
        "any",
        "bool",
        "chr",
        "dict",
        "divmod",
        "enumerate",
        "filter",
        "float",
        "frozenset",
        "int",
        "isinstance",
        "len",
        "list",
        "map",
        "max",
        "min",
        "ord",
        "pow",
        "range",
        "repr",
        "reversed",
        "round",
        "set",
        "slice",
        "sorted",
        "str",
        "sum",
        "tuple",
        "zip",
        "IndexError",
        "KeyError",
        "TypeError",
        "ValueError",
        "ZeroDivisionError",
    }
)

# Attribute on decoded functions holding the text they were built from, so a
# value read from the store can be written back without source files.
SOURCE_ATTR = "__context_source__"

_FILENAME = "<context-value>"

_FORBIDDEN_NODES: tuple[type[ast.AST], ...] = (
    ast.Import,
    ast.ImportFrom,
    ast.Global,
    ast.Nonlocal,
    ast.ClassDef,
    ast.AsyncFunctionDef,
    ast.AsyncFor,
    ast.AsyncWith,
    ast.Await,
    ast.Yield,
    ast.YieldFrom,
)

SAFE_ATTRIBUTES: frozenset[str] = frozenset(
    {
        # str
        "capitalize",
        "casefold",
        "center",
        "endswith",
        "find",
        "isalnum",
        "isalpha",
        "isdigit",
        "islower",
        "isspace",
        "isupper",
        "join",
        "ljust",
        "lower",
        "lstrip",
        "partition",
        "removeprefix",
        "removesuffix",
        "replace",
        "rfind",
        "rjust",
        "rpartition",
        "rsplit",
        "rstrip",
        "split",
        "splitlines",
        "startswith",
        "strip",
        "swapcase",
        "title",
        "upper",
        "zfill",
        # list, dict, set
        "add",
        "append",
        "clear",
        "copy",
        "count",
        "difference",
        "discard",
        "extend",
        "get",
        "index",
        "insert",
        "intersection",
        "issubset",
        "issuperset",
        "items",
        "keys",
        "pop",
        "remove",
        "reverse",
        "setdefault",
        "sort",
        "symmetric_difference",
        "union",
        "update",
        "values",
        # numbers
        "bit_length",
        "conjugate",
        "denominator",
        "imag",
        "is_integer",
        "numerator",
        "real",
    }
)


# ── encode ───────────────────────────────────────────────────


def encode(value: Any) -> Any:
    """Return *value* with every function replaced by its source text.

    Never raises.  A node that cannot be encoded is kept as-is.
    """
    try:
        if isinstance(value, types.FunctionType):
            return function_source(value)
        if isinstance(value, list):
            return [encode(item) for item in value]
        if isinstance(value, tuple):
            return tuple(encode(item) for item in value)
        if isinstance(value, dict):
            return {key: encode(item) for key, item in value.items()}
    except Exception:
        logger.debug("Leaving value unencoded: %r", value, exc_info=True)
    return value


def function_source(fn: types.FunctionType) -> str:
    """Return the literal source text of *fn*.

    Raises:
        OSError: The source file cannot be read.
        ValueError: The function's definition cannot be located in it.
    """
    stored = getattr(fn, SOURCE_ATTR, None)
    if isinstance(stored, str):
        return stored

    lines, _ = inspect.findsource(fn)
    source = "".join(lines)
    node = _locate(ast.parse(source), fn)
    segment = ast.get_source_segment(source, node, padded=True)
    if segment is None:
        raise ValueError(f"no source segment for {fn.__qualname__}")
    return textwrap.dedent(segment).strip()


def _locate(tree: ast.AST, fn: types.FunctionType) -> ast.Lambda | ast.FunctionDef:
    code = fn.__code__
    arity = code.co_argcount + code.co_kwonlyargcount
    expected = list(code.co_varnames[:arity])

    for node in ast.walk(tree):
        if fn.__name__ == "<lambda>":
            if (
                isinstance(node, ast.Lambda)
                and node.lineno == code.co_firstlineno
                and _positional_and_kwonly(node.args) == expected
            ):
                return node
        elif isinstance(node, ast.FunctionDef) and node.name == fn.__name__:
            first = min([node.lineno] + [d.lineno for d in node.decorator_list])
            if first == code.co_firstlineno:
                if node.decorator_list:
                    raise ValueError(f"cannot encode decorated function {fn.__qualname__}")
                return node
    raise ValueError(f"cannot locate definition of {fn.__qualname__}")


def _positional_and_kwonly(args: ast.arguments) -> list[str]:
    return [a.arg for a in args.posonlyargs + args.args + args.kwonlyargs]


# ── decode ───────────────────────────────────────────────────


def decode(value: Any) -> Any:
    """Return *value* with function-literal strings turned into functions.

    Strings that are not confined function literals come back unchanged,
    even when they would be valid Python expressions.  Never raises.
    """
    try:
        if isinstance(value, str):
            fn = parse_function(value)
            return value if fn is None else fn
        if isinstance(value, list):
            return [decode(item) for item in value]
        if isinstance(value, tuple):
            return tuple(decode(item) for item in value)
        if isinstance(value, dict):
            return {key: decode(item) for key, item in value.items()}
    except Exception:
        logger.debug("Leaving value undecoded: %r", value, exc_info=True)
    return value


def parse_function(text: str) -> types.FunctionType | None:
    """Build a function from *text*, or return ``None`` if it is not a confined literal."""
    stripped = text.strip()
    if not stripped.startswith(("lambda", "def ")):
        return None

    try:
        tree = ast.parse(stripped, filename=_FILENAME, mode="exec")
    except SyntaxError:
        return None
    if len(tree.body) != 1:
        return None

    statement = tree.body[0]
    func_node: ast.Lambda | ast.FunctionDef
    if isinstance(statement, ast.Expr) and isinstance(statement.value, ast.Lambda):
        func_node = statement.value
        name = "<lambda>"
    elif isinstance(statement, ast.FunctionDef) and not statement.decorator_list:
        func_node = statement
        name = statement.name
    else:
        return None

    if not _is_confined(func_node, name):
        return None

    module_code = compile(tree, _FILENAME, "exec")
    code = next(
        c for c in module_code.co_consts if isinstance(c, types.CodeType) and c.co_name == name
    )

    namespace: dict[str, Any] = {
        "__builtins__": {n: getattr(builtins, n) for n in SAFE_BUILTINS},
    }
    args = func_node.args
    defaults = tuple(ast.literal_eval(d) for d in args.defaults) or None
    fn = types.FunctionType(code, namespace, name, defaults)
    kwdefaults = {
        a.arg: ast.literal_eval(d)
        for a, d in zip(args.kwonlyargs, args.kw_defaults, strict=True)
        if d is not None
    }
    if kwdefaults:
        fn.__kwdefaults__ = kwdefaults
    if name != "<lambda>":
        namespace[name] = fn  # allow recursion
    setattr(fn, SOURCE_ATTR, text)
    return fn


def _is_confined(func_node: ast.Lambda | ast.FunctionDef, name: str) -> bool:
    args = func_node.args
    for default in args.defaults + [d for d in args.kw_defaults if d is not None]:
        try:
            ast.literal_eval(default)
        except (ValueError, TypeError, SyntaxError):
            return False

    bound: set[str] = {name}
    loaded: set[str] = set()
    for node in ast.walk(func_node):
        if isinstance(node, _FORBIDDEN_NODES):
            return False
        if isinstance(node, ast.Attribute):
            if node.attr not in SAFE_ATTRIBUTES:
                return False
        elif isinstance(node, ast.Name):
            if node.id.startswith("__"):
                return False
            if isinstance(node.ctx, ast.Load):
                loaded.add(node.id)
            else:
                bound.add(node.id)
        elif isinstance(node, ast.arguments):
            bound.update(_positional_and_kwonly(node))
            if node.vararg:
                bound.add(node.vararg.arg)
            if node.kwarg:
                bound.add(node.kwarg.arg)
        elif isinstance(node, ast.FunctionDef):
            bound.add(node.name)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            bound.add(node.name)

    return loaded <= bound | SAFE_BUILTINS
