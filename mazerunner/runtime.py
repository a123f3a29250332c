"""
Value model shared by both authoring syntaxes.

Authored programs only ever see plain values (numbers, strings, booleans,
``None``, lists, dicts and sets) plus the builtins and methods whitelisted
here. Nothing else of the host is reachable: attribute access on a dict reads
a key, method calls go through per-type tables, and every other lookup fails
with a ``ProgramError``.

Values stay small: ``range`` is lazy, and every operation that builds a
sequence in one step (repetition, concatenation, joins, conversions to text)
is checked against a per-value size limit and a per-run allocation budget.
Equality compares host values, so ``1 === true`` holds in braced code.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import ALLOCATION_BUDGET, MAX_INT_BITS, MAX_SEQUENCE_LENGTH
from .errors import ProgramError
from .syntax import BRACED


@dataclass
class AuthoredError:
    """Value produced by ``Error(...)`` / ``Exception(...)`` for ``throw``/``raise``."""

    kind: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class Builtin:
    name: str
    func: Callable[..., Any]
    min_args: int = 0
    max_args: Optional[int] = None

    def __call__(self, args: List[Any]) -> Any:
        check_arity(self.name, args, self.min_args, self.max_args)
        return self.func(*args)


class Namespace:
    """A read-only bag of builtins such as ``Math`` or ``console``."""

    def __init__(self, name: str, members: Dict[str, Any]):
        self.name = name
        self.members = members

    def __repr__(self) -> str:
        return f"<{self.name}>"


def check_arity(name: str, args: List[Any], lo: int, hi: Optional[int]) -> None:
    n = len(args)
    if lo <= n and (hi is None or n <= hi):
        return
    if hi == lo:
        want = f"{lo} arg" + ("" if lo == 1 else "s")
    elif hi is None:
        want = f"at least {lo} arg" + ("" if lo == 1 else "s")
    else:
        want = f"{lo} to {hi} args"
    raise ProgramError(f"{name}() expects {want}, got {n}")


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, Namespace):
        return value.name
    return type(value).__name__


def py_text(value: Any) -> str:
    return str(value)


def js_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value == int(value):
            return str(int(value))
        return str(value)
    if isinstance(value, (list, range)):
        return ",".join("" if v is None else js_text(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    if isinstance(value, set):
        return "[object Set]"
    return str(value)


def js_number(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    text = str(value).strip()
    if text == "":
        return 0
    try:
        return int(text)
    except ValueError:
        try:
            return float(text)
        except ValueError:
            return math.nan


_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def js_parse_int(value: Any, base: Any = 10) -> Any:
    """Leading integer of ``value`` in ``base``; ``NaN`` when there is none."""
    base = 10 if base is None else int(js_number(base))
    if base == 0:
        base = 10
    if not 2 <= base <= 36:
        return math.nan
    text = js_text(value).strip().lower()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if base == 16 and text.startswith("0x"):
        text = text[2:]
    valid = _DIGITS[:base]
    end = 0
    while end < len(text) and text[end] in valid:
        end += 1
    if end == 0:
        return math.nan
    return sign * int(text[:end], base)


def js_round(value: Any) -> int:
    return math.floor(value + 0.5)


def _sized(value: Any) -> bool:
    return isinstance(value, (list, dict, set, str, range))


def text_size(value: Any, limit: int = MAX_SEQUENCE_LENGTH) -> int:
    """Upper bound on the length of ``value`` as text, cut off once past ``limit``."""
    path: set = set()

    def walk(v: Any, total: int) -> int:
        if total > limit:
            return total
        if isinstance(v, str):
            return total + len(v) + 2
        if isinstance(v, bool) or v is None:
            return total + 5
        if isinstance(v, int):
            return total + v.bit_length() // 3 + 2
        if isinstance(v, range):
            if len(v) == 0:
                return total + 8
            widest = max(abs(v[0]), abs(v[-1]))
            return total + len(v) * (len(str(widest)) + 3)
        if isinstance(v, (list, set, dict)):
            if id(v) in path:
                return total + 5
            path.add(id(v))
            total += 2
            for item in (v.items() if isinstance(v, dict) else v):
                parts = item if isinstance(v, dict) else (item,)
                for part in parts:
                    total = walk(part, total + 2)
                if total > limit:
                    break
            path.discard(id(v))
            return total
        return total + 24

    return walk(value, 0)


def _growth(obj: Any, name: str, args: List[Any]) -> int:
    """Size of the sequence a method call is about to build, 0 if it builds none."""
    if name == "join":
        items = obj if isinstance(obj, list) else args[0] if args else ()
        sep = obj if isinstance(obj, str) else args[0] if args else ","
        return text_size(items) + len(items) * text_size(sep) if _sized(items) else 0
    if name == "replace" and isinstance(obj, str) and len(args) == 2:
        old, new = str(args[0]), str(args[1])
        hits = obj.count(old) if old else len(obj) + 1
        return len(obj) + hits * max(len(new) - len(old), 0)
    if name in ("concat", "extend") and args and _sized(args[0]):
        return len(obj) + len(args[0])
    if name in ("copy", "slice", "split", "keys", "values", "items", "entries") and _sized(obj):
        return len(obj)
    return 0


# Method tables: name -> (callable(obj, *args), min_args, max_args)

def _list_push(items: list, *values: Any) -> int:
    items.extend(values)
    return len(items)


def _list_unshift(items: list, *values: Any) -> int:
    items[0:0] = values
    return len(items)


def _list_index_of(items: list, value: Any) -> int:
    return items.index(value) if value in items else -1


def _list_reverse(items: list) -> list:
    items.reverse()
    return items


def _list_sort(items: list) -> list:
    items.sort()
    return items


def _dict_set(d: dict, key: Any, value: Any) -> dict:
    d[key] = value
    return d


def _dict_delete(d: dict, key: Any) -> bool:
    if key in d:
        del d[key]
        return True
    return False


def _set_add(s: set, value: Any) -> set:
    s.add(value)
    return s


def _set_delete(s: set, value: Any) -> bool:
    if value in s:
        s.remove(value)
        return True
    return False


def _str_index_of(s: str, sub: str) -> int:
    return s.find(sub)


LIST_METHODS: Dict[str, Tuple[Callable[..., Any], int, Optional[int]]] = {
    "push": (_list_push, 0, None),
    "append": (list.append, 1, 1),
    "pop": (list.pop, 0, 1),
    "shift": (lambda items: items.pop(0), 0, 0),
    "unshift": (_list_unshift, 0, None),
    "insert": (list.insert, 2, 2),
    "includes": (lambda items, v: v in items, 1, 1),
    "has": (lambda items, v: v in items, 1, 1),
    "indexOf": (_list_index_of, 1, 1),
    "index": (list.index, 1, 1),
    "count": (list.count, 1, 1),
    "remove": (list.remove, 1, 1),
    "extend": (list.extend, 1, 1),
    "concat": (lambda items, other: items + list(other), 1, 1),
    "slice": (lambda items, a=None, b=None: items[a:b], 0, 2),
    "join": (lambda items, sep=",": sep.join(js_text(v) for v in items), 0, 1),
    "copy": (list.copy, 0, 0),
    "reverse": (_list_reverse, 0, 0),
    "sort": (_list_sort, 0, 0),
    "clear": (list.clear, 0, 0),
}

DICT_METHODS: Dict[str, Tuple[Callable[..., Any], int, Optional[int]]] = {
    "get": (dict.get, 1, 2),
    "set": (_dict_set, 2, 2),
    "has": (lambda d, k: k in d, 1, 1),
    "includes": (lambda d, k: k in d, 1, 1),
    "delete": (_dict_delete, 1, 1),
    "pop": (dict.pop, 1, 2),
    "setdefault": (dict.setdefault, 2, 2),
    "update": (dict.update, 1, 1),
    "keys": (lambda d: list(d.keys()), 0, 0),
    "values": (lambda d: list(d.values()), 0, 0),
    "items": (lambda d: [[k, v] for k, v in d.items()], 0, 0),
    "entries": (lambda d: [[k, v] for k, v in d.items()], 0, 0),
    "copy": (dict.copy, 0, 0),
    "clear": (dict.clear, 0, 0),
}

SET_METHODS: Dict[str, Tuple[Callable[..., Any], int, Optional[int]]] = {
    "add": (_set_add, 1, 1),
    "has": (lambda s, v: v in s, 1, 1),
    "includes": (lambda s, v: v in s, 1, 1),
    "delete": (_set_delete, 1, 1),
    "discard": (set.discard, 1, 1),
    "remove": (set.remove, 1, 1),
    "values": (lambda s: list(s), 0, 0),
    "copy": (set.copy, 0, 0),
    "clear": (set.clear, 0, 0),
}

STR_METHODS: Dict[str, Tuple[Callable[..., Any], int, Optional[int]]] = {
    "upper": (str.upper, 0, 0),
    "toUpperCase": (str.upper, 0, 0),
    "lower": (str.lower, 0, 0),
    "toLowerCase": (str.lower, 0, 0),
    "strip": (str.strip, 0, 0),
    "trim": (str.strip, 0, 0),
    "split": (str.split, 0, 1),
    "startswith": (str.startswith, 1, 1),
    "startsWith": (str.startswith, 1, 1),
    "endswith": (str.endswith, 1, 1),
    "endsWith": (str.endswith, 1, 1),
    "includes": (lambda s, sub: sub in s, 1, 1),
    "has": (lambda s, sub: sub in s, 1, 1),
    "replace": (str.replace, 2, 2),
    "find": (str.find, 1, 1),
    "indexOf": (_str_index_of, 1, 1),
    "join": (lambda sep, items: sep.join(items), 1, 1),
}


def _method_table(obj: Any) -> Optional[Dict[str, Tuple[Callable[..., Any], int, Optional[int]]]]:
    if isinstance(obj, list):
        return LIST_METHODS
    if isinstance(obj, dict):
        return DICT_METHODS
    if isinstance(obj, set):
        return SET_METHODS
    if isinstance(obj, str):
        return STR_METHODS
    return None


class Runtime:
    """Per-run value operations for one syntax, plus the run's printed output."""

    def __init__(self, syntax: str):
        self.syntax = syntax
        self.output: List[str] = []
        self.allocated = 0
        self.to_text = js_text if syntax == BRACED else py_text
        self.builtins: Dict[str, Any] = self._braced_builtins() if syntax == BRACED else self._indented_builtins()

    # allocation

    def allocate(self, size: int) -> None:
        """Charge ``size`` elements against the run's allocation budget."""
        if size > MAX_SEQUENCE_LENGTH:
            raise ProgramError(f"value too large (more than {MAX_SEQUENCE_LENGTH:,} elements)")
        self.allocated += size
        if self.allocated > ALLOCATION_BUDGET:
            raise ProgramError(f"allocation budget of {ALLOCATION_BUDGET:,} elements exhausted")

    def text(self, value: Any) -> str:
        if not isinstance(value, str):
            self.allocate(text_size(value))
        return self.to_text(value)

    def _bulk(self, func: Callable[[Any], Any]) -> Callable[..., Any]:
        def build(source: Any = ()) -> Any:
            if _sized(source):
                self.allocate(len(source))
            return func(source)

        return build

    def _range(self, *args: Any) -> range:
        try:
            r = range(*args)
            self.allocate(len(r))
        except OverflowError:
            raise ProgramError("range too large") from None
        return r

    # builtins

    def _print(self, *values: Any) -> None:
        self.output.append(" ".join(self.text(v) for v in values))

    def _indented_builtins(self) -> Dict[str, Any]:
        def error(kind: str) -> Builtin:
            return Builtin(kind, lambda message="": AuthoredError(kind, self.text(message)), 0, 1)

        return {
            "len": Builtin("len", len, 1, 1),
            "str": Builtin("str", self.text, 1, 1),
            "int": Builtin("int", int, 1, 1),
            "float": Builtin("float", float, 1, 1),
            "bool": Builtin("bool", bool, 1, 1),
            "abs": Builtin("abs", abs, 1, 1),
            "min": Builtin("min", min, 1, None),
            "max": Builtin("max", max, 1, None),
            "range": Builtin("range", self._range, 1, 3),
            "list": Builtin("list", self._bulk(list), 0, 1),
            "dict": Builtin("dict", dict, 0, 0),
            "set": Builtin("set", self._bulk(set), 0, 1),
            "sorted": Builtin("sorted", self._bulk(sorted), 1, 1),
            "print": Builtin("print", self._print, 0, None),
            "Exception": error("Exception"),
            "ValueError": error("ValueError"),
            "RuntimeError": error("RuntimeError"),
        }

    def _braced_builtins(self) -> Dict[str, Any]:
        return {
            "String": Builtin("String", self.text, 1, 1),
            "Number": Builtin("Number", js_number, 1, 1),
            "parseInt": Builtin("parseInt", lambda s, base=10: js_parse_int(self.text(s), base), 1, 2),
            "range": Builtin("range", lambda *a: list(self._range(*a)), 1, 3),
            "Set": Builtin("Set", self._bulk(set), 0, 1),
            "Map": Builtin("Map", self._bulk(dict), 0, 1),
            "Error": Builtin("Error", lambda message="": AuthoredError("Error", self.text(message)), 0, 1),
            "Math": Namespace("Math", {
                "abs": Builtin("Math.abs", abs, 1, 1),
                "min": Builtin("Math.min", min, 1, None),
                "max": Builtin("Math.max", max, 1, None),
                "floor": Builtin("Math.floor", math.floor, 1, 1),
                "ceil": Builtin("Math.ceil", math.ceil, 1, 1),
                "round": Builtin("Math.round", js_round, 1, 1),
                "trunc": Builtin("Math.trunc", math.trunc, 1, 1),
                "sqrt": Builtin("Math.sqrt", math.sqrt, 1, 1),
                "PI": math.pi,
            }),
            "Array": Namespace("Array", {
                "from": Builtin("Array.from", self._bulk(list), 1, 1),
                "isArray": Builtin("Array.isArray", lambda v: isinstance(v, list), 1, 1),
            }),
            "Object": Namespace("Object", {
                "keys": Builtin("Object.keys", self._bulk(lambda d: list(d.keys())), 1, 1),
                "values": Builtin("Object.values", self._bulk(lambda d: list(d.values())), 1, 1),
                "entries": Builtin("Object.entries", self._bulk(lambda d: [[k, v] for k, v in d.items()]), 1, 1),
            }),
            "console": Namespace("console", {
                "log": Builtin("console.log", self._print, 0, None),
            }),
        }

    def lookup_builtin(self, name: str) -> Any:
        return self.builtins.get(name)

    # operators

    def binary(self, op: str, a: Any, b: Any) -> Any:
        if op == "+":
            if self.syntax == BRACED and (isinstance(a, str) != isinstance(b, str)):
                return self.text(a) + self.text(b)
            if isinstance(a, (str, list)) and isinstance(b, (str, list)):
                self.allocate(len(a) + len(b))
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            self._check_product(a, b)
            return a * b
        if op == "/":
            return a / b
        if op == "//":
            return a // b
        if op == "%":
            if isinstance(a, str):
                raise ProgramError("string formatting with % is not supported")
            return a % b
        if op == "==":
            return a == b
        if op == "!=":
            return a != b
        if op == "<":
            return a < b
        if op == ">":
            return a > b
        if op == "<=":
            return a <= b
        if op == ">=":
            return a >= b
        if op == "in":
            return a in b
        if op == "not in":
            return a not in b
        if op == "is":
            return a is b
        if op == "is not":
            return a is not b
        raise ProgramError(f"Unsupported binary operator {op}")

    def _check_product(self, a: Any, b: Any) -> None:
        for seq, count in ((a, b), (b, a)):
            if isinstance(seq, (str, list)) and isinstance(count, int):
                self.allocate(len(seq) * max(count, 0))
                return
        if isinstance(a, int) and isinstance(b, int) and a.bit_length() + b.bit_length() > MAX_INT_BITS:
            raise ProgramError(f"integer result too large (more than {MAX_INT_BITS} bits)")

    def unary(self, op: str, value: Any) -> Any:
        if op == "-":
            return -value
        if op == "not":
            return not value
        raise ProgramError(f"Unsupported unary operator {op}")

    # member access

    def get_attr(self, obj: Any, name: str) -> Any:
        if isinstance(obj, Namespace):
            if name not in obj.members:
                raise ProgramError(f"{obj.name}.{name} is not defined")
            return obj.members[name]
        if isinstance(obj, dict):
            if name in obj:
                return obj[name]
            if name in ("length", "size"):
                return len(obj)
            if self.syntax == BRACED:
                return None
            raise ProgramError(f"key {name!r} not found")
        if name in ("length", "size") and _sized(obj):
            return len(obj)
        if isinstance(obj, AuthoredError) and name == "message":
            return obj.message
        raise ProgramError(f"'{type_name(obj)}' value has no property '{name}'")

    def set_attr(self, obj: Any, name: str, value: Any) -> None:
        if not isinstance(obj, dict):
            raise ProgramError(f"cannot set property '{name}' on '{type_name(obj)}' value")
        obj[name] = value

    def get_item(self, obj: Any, key: Any) -> Any:
        if isinstance(obj, dict):
            if key in obj:
                return obj[key]
            if self.syntax == BRACED:
                return None
            raise ProgramError(f"key {key!r} not found")
        if isinstance(obj, (list, str, range)):
            if isinstance(key, float) and key == int(key):
                key = int(key)
            if not isinstance(key, int) or isinstance(key, bool):
                raise ProgramError(f"'{type_name(obj)}' indices must be integers, not '{type_name(key)}'")
            if not -len(obj) <= key < len(obj):
                if self.syntax == BRACED:
                    return None
                raise ProgramError(f"index {key} out of range")
            return obj[key]
        raise ProgramError(f"'{type_name(obj)}' value is not subscriptable")

    def set_item(self, obj: Any, key: Any, value: Any) -> None:
        if isinstance(obj, dict):
            obj[key] = value
            return
        if isinstance(obj, list):
            if not isinstance(key, int) or isinstance(key, bool):
                raise ProgramError(f"list indices must be integers, not '{type_name(key)}'")
            if not -len(obj) <= key < len(obj):
                raise ProgramError(f"index {key} out of range")
            obj[key] = value
            return
        raise ProgramError(f"'{type_name(obj)}' value does not support item assignment")

    def call_method(self, obj: Any, name: str, args: List[Any]) -> Any:
        if isinstance(obj, Namespace):
            member = self.get_attr(obj, name)
            if not isinstance(member, Builtin):
                raise ProgramError(f"{obj.name}.{name} is not a function")
            return member(args)
        table = _method_table(obj)
        if table is None or name not in table:
            raise ProgramError(f"'{type_name(obj)}' value has no method '{name}'")
        func, lo, hi = table[name]
        check_arity(name, args, lo, hi)
        self.allocate(_growth(obj, name, args))
        return func(obj, *args)

    def iterate(self, value: Any):
        if isinstance(value, (list, dict, set, str, range)):
            return iter(value)
        raise ProgramError(f"'{type_name(value)}' value is not iterable")

    def error_message(self, value: Any) -> str:
        if isinstance(value, AuthoredError):
            return value.message
        if isinstance(value, str):
            return value
        return self.text(value)

