"""
Rudimentary type [re-]definitions for cross-versioned Python & mypy.

The problem is that mypy's type-sheds define some StdLib types as generics,
while the Python runtime does not support the usual syntax for them:
e.g. `logging.LoggerAdapter`.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# We only promise that it is based on one of the built-in loggable classes.
Logger = Union[logging.Logger, LoggerAdapter]
