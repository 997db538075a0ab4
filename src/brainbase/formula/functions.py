"""Formula functions for BrainBase.

Implements the built-in functions available in formulas. Each function is
registered with its return type; arity is read from the signature so the
validator can check calls without evaluating them.
"""

import calendar
import inspect
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from brainbase.core.config import settings

FormulaFunction = Callable[..., Any]


@dataclass(frozen=True)
class FunctionSpec:
    """Registered formula function plus the metadata the validator needs."""

    name: str
    func: FormulaFunction
    return_type: str
    min_args: int
    max_args: int | None

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args


# Registry of formula functions
FORMULA_FUNCTIONS: dict[str, FunctionSpec] = {}


def _arity(func: FormulaFunction) -> tuple[int, int | None]:
    min_args = 0
    max_args: int | None = 0
    for param in inspect.signature(func).parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            max_args = None
        elif param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            if param.default is inspect.Parameter.empty:
                min_args += 1
            if max_args is not None:
                max_args += 1
    return min_args, max_args


def check_text_length(length: int) -> None:
    """Refuse to build text longer than ``formula_max_text_length``."""
    limit = settings.formula_max_text_length
    if length > limit:
        raise ValueError(f"Text result of {length} characters exceeds the {limit} limit")


def register_function(
    name: str, returns: str = "any"
) -> Callable[[FormulaFunction], FormulaFunction]:
    """Decorator to register a formula function."""

    def decorator(func: FormulaFunction) -> FormulaFunction:
        min_args, max_args = _arity(func)
        FORMULA_FUNCTIONS[name.upper()] = FunctionSpec(
            name=name.upper(),
            func=func,
            return_type=returns,
            min_args=min_args,
            max_args=max_args,
        )
        return func

    return decorator


def get_function(name: str) -> FunctionSpec | None:
    return FORMULA_FUNCTIONS.get(name.upper())


def _flatten(args: tuple[Any, ...]) -> list[Any]:
    values: list[Any] = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            values.extend(_flatten(tuple(arg)))
        else:
            values.append(arg)
    return values


def _numbers(args: tuple[Any, ...]) -> list[float]:
    result = []
    for v in _flatten(args):
        if v is None or isinstance(v, bool):
            continue
        try:
            result.append(float(v))
        except (ValueError, TypeError):
            continue
    return result


def _tidy(number: float) -> float | int:
    """Collapse whole floats to int so 2.0 + 3 reads back as 5."""
    if isinstance(number, float) and number.is_integer() and abs(number) < 2**53:
        return int(number)
    return number


# =============================================================================
# Text Functions
# =============================================================================


@register_function("CONCAT", returns="text")
@register_function("CONCATENATE", returns="text")
def func_concat(*args: Any) -> str:
    """Concatenate values into a string."""
    parts = [str(a) for a in _flatten(args) if a is not None]
    check_text_length(sum(len(p) for p in parts))
    return "".join(parts)


@register_function("LEFT", returns="text")
def func_left(text: Any, count: int = 1) -> str:
    if text is None:
        return ""
    return str(text)[: int(count)]


@register_function("RIGHT", returns="text")
def func_right(text: Any, count: int = 1) -> str:
    if text is None:
        return ""
    return str(text)[-int(count) :] if int(count) > 0 else ""


@register_function("MID", returns="text")
def func_mid(text: Any, start: int, count: int) -> str:
    """Substring, 1-indexed."""
    if text is None:
        return ""
    start = max(1, int(start))
    return str(text)[start - 1 : start - 1 + int(count)]


@register_function("LEN", returns="number")
def func_len(text: Any) -> int:
    if text is None:
        return 0
    if isinstance(text, (list, tuple)):
        return len(text)
    return len(str(text))


@register_function("TRIM", returns="text")
def func_trim(text: Any) -> str:
    return "" if text is None else str(text).strip()


@register_function("LOWER", returns="text")
def func_lower(text: Any) -> str:
    return "" if text is None else str(text).lower()


@register_function("UPPER", returns="text")
def func_upper(text: Any) -> str:
    return "" if text is None else str(text).upper()


@register_function("PROPER", returns="text")
def func_proper(text: Any) -> str:
    return "" if text is None else str(text).title()


@register_function("SUBSTITUTE", returns="text")
def func_substitute(text: Any, old: Any, new: Any, count: Any = None) -> str:
    """Replace occurrences of old with new."""
    if text is None:
        return ""
    text, old, new = str(text), str(old), str(new)
    occurrences = text.count(old)
    if count is not None:
        occurrences = min(occurrences, max(0, int(count)))
    check_text_length(len(text) + occurrences * (len(new) - len(old)))
    if count is None:
        return text.replace(old, new)
    return text.replace(old, new, int(count))


@register_function("REPT", returns="text")
def func_rept(text: Any, count: int) -> str:
    if text is None:
        return ""
    text, count = str(text), max(0, int(count))
    check_text_length(len(text) * count)
    return text * count


@register_function("FIND", returns="number")
def func_find(search: Any, text: Any, start: int = 1) -> int:
    """Position of search in text (case-sensitive, 1-indexed, 0 if absent)."""
    if text is None:
        return 0
    pos = str(text).find(str(search), max(0, int(start) - 1))
    return pos + 1


@register_function("SEARCH", returns="number")
def func_search(search: Any, text: Any, start: int = 1) -> int:
    """Case-insensitive FIND."""
    if text is None:
        return 0
    pos = str(text).lower().find(str(search).lower(), max(0, int(start) - 1))
    return pos + 1


@register_function("T", returns="text")
def func_t(value: Any) -> str:
    return value if isinstance(value, str) else ""


@register_function("VALUE", returns="number")
def func_value(text: Any) -> float | int | None:
    """Convert text to number."""
    if text is None:
        return None
    try:
        return _tidy(float(str(text).replace(",", "")))
    except ValueError:
        return None


# =============================================================================
# Numeric Functions
# =============================================================================


@register_function("SUM", returns="number")
def func_sum(*args: Any) -> float | int:
    return _tidy(sum(_numbers(args)))


@register_function("AVG", returns="number")
@register_function("AVERAGE", returns="number")
def func_avg(*args: Any) -> float | None:
    values = _numbers(args)
    if not values:
        return None
    return _tidy(sum(values) / len(values))


@register_function("MIN", returns="number")
def func_min(*args: Any) -> float | int | None:
    values = _numbers(args)
    return _tidy(min(values)) if values else None


@register_function("MAX", returns="number")
def func_max(*args: Any) -> float | int | None:
    values = _numbers(args)
    return _tidy(max(values)) if values else None


@register_function("COUNT", returns="number")
def func_count(*args: Any) -> int:
    """Count of numeric values."""
    return len(_numbers(args))


@register_function("COUNTA", returns="number")
def func_counta(*args: Any) -> int:
    """Count of non-empty values."""
    return len([v for v in _flatten(args) if v is not None and v != ""])


@register_function("COUNTALL", returns="number")
def func_countall(*args: Any) -> int:
    return len(_flatten(args))


@register_function("ROUND", returns="number")
def func_round(value: Any, decimals: int = 0) -> float | int | None:
    if value is None:
        return None
    return _tidy(round(float(value), int(decimals)))


@register_function("ROUNDUP", returns="number")
def func_roundup(value: Any, decimals: int = 0) -> float | int | None:
    """Round away from zero."""
    if value is None:
        return None
    v = float(value)
    multiplier = 10 ** int(decimals)
    rounded = math.ceil(v * multiplier) if v >= 0 else math.floor(v * multiplier)
    return _tidy(rounded / multiplier)


@register_function("ROUNDDOWN", returns="number")
def func_rounddown(value: Any, decimals: int = 0) -> float | int | None:
    """Round toward zero."""
    if value is None:
        return None
    v = float(value)
    multiplier = 10 ** int(decimals)
    rounded = math.floor(v * multiplier) if v >= 0 else math.ceil(v * multiplier)
    return _tidy(rounded / multiplier)


@register_function("CEILING", returns="number")
def func_ceiling(value: Any, significance: float = 1) -> float | int | None:
    if value is None:
        return None
    s = float(significance)
    if s == 0:
        return 0
    return _tidy(math.ceil(float(value) / s) * s)


@register_function("FLOOR", returns="number")
def func_floor(value: Any, significance: float = 1) -> float | int | None:
    if value is None:
        return None
    s = float(significance)
    if s == 0:
        return 0
    return _tidy(math.floor(float(value) / s) * s)


@register_function("ABS", returns="number")
def func_abs(value: Any) -> float | int | None:
    if value is None:
        return None
    return _tidy(abs(float(value)))


@register_function("SQRT", returns="number")
def func_sqrt(value: Any) -> float | int | None:
    if value is None:
        return None
    v = float(value)
    if v < 0:
        return None
    return _tidy(math.sqrt(v))


@register_function("POWER", returns="number")
def func_power(base: Any, exponent: Any) -> float | int | None:
    if base is None or exponent is None:
        return None
    return _tidy(math.pow(float(base), float(exponent)))


@register_function("MOD", returns="number")
def func_mod(value: Any, divisor: Any) -> float | int | None:
    if value is None or divisor is None:
        return None
    d = float(divisor)
    if d == 0:
        return None
    return _tidy(float(value) % d)


@register_function("INT", returns="number")
def func_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(float(value))


@register_function("LOG", returns="number")
def func_log(value: Any, base: float = 10) -> float | None:
    if value is None:
        return None
    v, b = float(value), float(base)
    if v <= 0 or b <= 0 or b == 1:
        return None
    return math.log(v, b)


# =============================================================================
# Logical Functions
# =============================================================================


@register_function("IF")
def func_if(condition: Any, if_true: Any, if_false: Any = None) -> Any:
    """IF(condition, value_if_true, value_if_false)."""
    return if_true if condition else if_false


@register_function("IFS")
def func_ifs(*args: Any) -> Any:
    """IFS(cond1, val1, cond2, val2, ...)."""
    for i in range(0, len(args) - 1, 2):
        if args[i]:
            return args[i + 1]
    return None


@register_function("SWITCH")
def func_switch(expression: Any, *args: Any) -> Any:
    """SWITCH(expr, case1, val1, ..., [default])."""
    i = 0
    while i < len(args) - 1:
        if expression == args[i]:
            return args[i + 1]
        i += 2
    if len(args) % 2 == 1:
        return args[-1]
    return None


@register_function("AND", returns="boolean")
def func_and(*args: Any) -> bool:
    return all(bool(v) for v in _flatten(args))


@register_function("OR", returns="boolean")
def func_or(*args: Any) -> bool:
    return any(bool(v) for v in _flatten(args))


@register_function("NOT", returns="boolean")
def func_not(value: Any) -> bool:
    return not value


@register_function("XOR", returns="boolean")
def func_xor(*args: Any) -> bool:
    """True when an odd number of values are truthy."""
    return sum(1 for v in _flatten(args) if v) % 2 == 1


@register_function("TRUE", returns="boolean")
def func_true() -> bool:
    return True


@register_function("FALSE", returns="boolean")
def func_false() -> bool:
    return False


@register_function("BLANK", returns="null")
def func_blank() -> None:
    return None


@register_function("ISBLANK", returns="boolean")
def func_isblank(value: Any) -> bool:
    return value is None or value == "" or value == []


@register_function("ISNUMBER", returns="boolean")
def func_isnumber(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    try:
        float(value)
        return True
    except (ValueError, TypeError):
        return False


@register_function("ISTEXT", returns="boolean")
def func_istext(value: Any) -> bool:
    return isinstance(value, str)


# =============================================================================
# Date Functions
# =============================================================================


def parse_date(value: Any) -> date | None:
    """Coerce ISO strings, dates and datetimes to a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


@register_function("TODAY", returns="date")
def func_today() -> date:
    return datetime.now(timezone.utc).date()


@register_function("NOW", returns="date")
def func_now() -> datetime:
    return datetime.now(timezone.utc)


@register_function("YEAR", returns="number")
def func_year(d: Any) -> int | None:
    parsed = parse_date(d)
    return parsed.year if parsed else None


@register_function("MONTH", returns="number")
def func_month(d: Any) -> int | None:
    parsed = parse_date(d)
    return parsed.month if parsed else None


@register_function("DAY", returns="number")
def func_day(d: Any) -> int | None:
    parsed = parse_date(d)
    return parsed.day if parsed else None


@register_function("WEEKDAY", returns="number")
def func_weekday(d: Any) -> int | None:
    """Day of week, Sunday = 0."""
    parsed = parse_date(d)
    return (parsed.weekday() + 1) % 7 if parsed else None


@register_function("DATEADD", returns="date")
def func_dateadd(d: Any, count: Any, unit: Any = "days") -> date | datetime | None:
    """DATEADD(date, count, 'days'|'weeks'|'months'|'years'|'hours'|'minutes')."""
    moment: date | datetime | None
    if isinstance(d, datetime) or (isinstance(d, str) and "T" in d):
        moment = parse_datetime(d)
    else:
        moment = parse_date(d)
    if moment is None:
        return None

    unit = str(unit).lower().rstrip("s")
    count = int(count)

    if unit in ("day", "d"):
        return moment + timedelta(days=count)
    if unit in ("week", "w"):
        return moment + timedelta(weeks=count)
    if unit in ("month", "m", "year", "y"):
        months = count if unit in ("month", "m") else count * 12
        new_month = moment.month + months
        new_year = moment.year + (new_month - 1) // 12
        new_month = (new_month - 1) % 12 + 1
        new_day = min(moment.day, calendar.monthrange(new_year, new_month)[1])
        return moment.replace(year=new_year, month=new_month, day=new_day)
    if unit in ("hour", "h", "minute", "min"):
        as_datetime = parse_datetime(moment)
        delta = timedelta(hours=count) if unit in ("hour", "h") else timedelta(minutes=count)
        return as_datetime + delta if as_datetime else None
    raise ValueError(f"Unknown date unit: {unit}")


@register_function("DATEDIFF", returns="number")
@register_function("DATETIME_DIFF", returns="number")
def func_datediff(d1: Any, d2: Any, unit: Any = "days") -> int | None:
    """Whole units from d1 to d2."""
    a, b = parse_date(d1), parse_date(d2)
    if a is None or b is None:
        return None
    unit = str(unit).lower().rstrip("s")
    if unit in ("day", "d"):
        return (b - a).days
    if unit in ("week", "w"):
        return (b - a).days // 7
    if unit in ("month", "m"):
        return (b.year - a.year) * 12 + (b.month - a.month)
    if unit in ("year", "y"):
        return b.year - a.year
    raise ValueError(f"Unknown date unit: {unit}")


@register_function("DATETIME_FORMAT", returns="text")
def func_datetime_format(d: Any, fmt: Any = "%Y-%m-%d") -> str | None:
    moment = parse_datetime(d)
    return moment.strftime(str(fmt)) if moment else None


@register_function("DATETIME_PARSE", returns="date")
def func_datetime_parse(text: Any, fmt: Any = "%Y-%m-%d") -> datetime | None:
    if text is None:
        return None
    try:
        return datetime.strptime(str(text), str(fmt))
    except ValueError:
        return None


# =============================================================================
# Array Functions
# =============================================================================


@register_function("ARRAYCOMPACT", returns="array")
def func_arraycompact(*args: Any) -> list[Any]:
    """Drop empty values."""
    return [v for v in _flatten(args) if v is not None and v != ""]


@register_function("ARRAYFLATTEN", returns="array")
def func_arrayflatten(*args: Any) -> list[Any]:
    return _flatten(args)


@register_function("ARRAYUNIQUE", returns="array")
def func_arrayunique(*args: Any) -> list[Any]:
    result: list[Any] = []
    for v in _flatten(args):
        if v not in result:
            result.append(v)
    return result


@register_function("ARRAYJOIN", returns="text")
def func_arrayjoin(array: Any, separator: Any = ", ") -> str:
    if not isinstance(array, (list, tuple)):
        return str(array) if array is not None else ""
    parts = [str(a) for a in _flatten(tuple(array)) if a is not None]
    separator = str(separator)
    check_text_length(sum(len(p) for p in parts) + len(separator) * max(0, len(parts) - 1))
    return separator.join(parts)
