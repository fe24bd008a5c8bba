"""
Rudimentary type definitions shared across the codebase.

Some stdlib classes are generic only in the type-sheds, not at runtime
(e.g. `logging.LoggerAdapter`), so they are defined here once for both.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# Anything loggable: either a regular logger, or an adapter with extras (e.g. the object logger).
Logger = Union[logging.Logger, LoggerAdapter]
