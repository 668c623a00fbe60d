from __future__ import annotations

from typing import Optional, Union

from txnest.transaction.interfaces import IsolationLevel, TransactionStrategy
from txnest.transaction.strategy import NestedStrategy


class Settings:
    """Process wide defaults.

    Nothing reads ambient state besides this object. It starts out with no
    isolation level and the savepoint based strategy, is changed only
    through `configure`, and goes back to those defaults with `reset`.

    Example:

    ```python
    Settings.configure(isolation_level="serializable")
    ...
    Settings.reset()
    ```
    """

    _singleton = None
    default_isolation_level: IsolationLevel
    default_strategy: TransactionStrategy

    def __new__(cls, *args, **kwargs):
        if cls._singleton is None:
            cls.reset()
        return cls._singleton

    @classmethod
    def configure(
        cls,
        *,
        isolation_level: Union[IsolationLevel, str, None] = None,
        strategy: Optional[TransactionStrategy] = None,
    ) -> Settings:
        instance = cls()
        if isolation_level is not None:
            instance.default_isolation_level = IsolationLevel.parse(
                isolation_level
            )
        if strategy is not None:
            instance.default_strategy = strategy
        return instance

    @classmethod
    def reset(cls):
        cls._singleton = super().__new__(cls)
        cls._singleton.default_isolation_level = IsolationLevel.NONE
        cls._singleton.default_strategy = NestedStrategy()


def set_default_isolation_level(
    level: Union[IsolationLevel, str]
) -> IsolationLevel:
    """Set the isolation level applied to every newly opened connection
    that does not ask for one itself."""
    return Settings.configure(isolation_level=level).default_isolation_level
