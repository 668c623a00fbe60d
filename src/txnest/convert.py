import re
from typing import Any, Callable, Dict, Type

QMARK = re.compile(r"('(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")|\?")


def convert_sql_params(
    query: str, positional_sub: str = r"%s", escape_percent: bool = True
) -> str:
    """Rewrite ``?`` placeholders into the parameter style of a driver.

    Question marks inside quoted literals and identifiers are left alone.
    For drivers using ``%s`` placeholders, literal percent signs are doubled.
    """
    if escape_percent:
        query = query.replace("%", "%%")
    if positional_sub == "?":
        return query

    def replace(match):
        quoted = match.group(1)
        return quoted if quoted is not None else positional_sub

    return QMARK.sub(replace, query)


class Binder:
    """Object responsible for casting values into something the driver can
    bind to a statement.

    Conversions are looked up by the type of the value, walking its MRO, so
    a conversion registered for a base class applies to its subclasses.

    Example:

    ```python
    binder = Binder()
    binder.register(Money, lambda value: value.cents)
    ```
    """

    def __init__(self) -> None:
        self._converters: Dict[Type[Any], Callable[[Any], Any]] = {}

    def register(self, kind: Type[Any], converter: Callable[[Any], Any]):
        self._converters[kind] = converter

    def to_sql(self, value: Any) -> Any:
        for kind in type(value).__mro__:
            converter = self._converters.get(kind)
            if converter is not None:
                return converter(value)
        return value
