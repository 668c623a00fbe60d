from typing import Any, Callable, Dict, List, Sequence, Tuple, Union

Record = Union[Dict[str, Any], Tuple[Any, ...]]


class Hydrator:
    """Object responsible for casting rows from a driver cursor into
    records"""

    def __init__(
        self,
        identifiers: Callable[[str], str] = str.lower,
        as_arrays: bool = False,
    ) -> None:
        """
        Args:
            identifiers (Callable[[str], str], optional): Applied to every
                column label to produce the record keys. Defaults to
                `str.lower`.
            as_arrays (bool, optional): Produce positional tuples instead of
                keyed records. Defaults to `False`.
        """
        self.identifiers = identifiers
        self.as_arrays = as_arrays

    def keys(self, description: Sequence[Sequence[Any]]) -> List[str]:
        """Record keys for the columns of a cursor description"""
        return [self.identifiers(column[0]) for column in description]

    def hydrate(self, row: Sequence[Any], keys: Sequence[str]) -> Record:
        """Perform casting operation

        Args:
            row (Sequence[Any]): Raw row from the cursor
            keys (Sequence[str]): Keys produced by `keys`. Ignored when
                producing arrays.

        Returns:
            Record: A dict keyed by column, or a tuple
        """
        values = [self.from_sql(value) for value in row]
        if self.as_arrays:
            return tuple(values)
        return dict(zip(keys, values))

    def from_sql(self, value: Any) -> Any:
        """Hook to convert a single value read from the database"""
        return value
