"""Centralised error logging for batch work.

Usage:
    from scoreforge.services.error_logger import log_error
    try:
        ...
    except Exception as e:
        record = log_error(e, module="simulation", context={"index": 3})

The returned ErrorRecord is attached to results instead of being persisted.
"""

from __future__ import annotations

import logging
import traceback as tb_module
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger("scoreforge.errors")


@dataclass
class ErrorRecord:
    error_type: str
    message: str
    traceback: str
    module: Optional[str] = None
    function_name: Optional[str] = None
    line_number: Optional[int] = None
    context: dict[str, Any] = field(default_factory=dict)


def _sanitize_text(value: object, *, max_len: Optional[int] = None) -> str:
    """Normalize control characters before logging/serializing text."""
    text = str(value)
    text = "".join(ch if (ch >= " " or ch in "\n\r\t") else " " for ch in text)
    if max_len is not None:
        return text[:max_len]
    return text


def log_error(
    exc: BaseException,
    *,
    module: Optional[str] = None,
    function_name: Optional[str] = None,
    line_number: Optional[int] = None,
    context: Optional[dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> ErrorRecord:
    """Log an exception and return a structured record of it. Never raises."""
    error_type = type(exc).__name__
    message = _sanitize_text(exc, max_len=2000)
    traceback_str = _sanitize_text(
        "".join(tb_module.format_exception(type(exc), exc, exc.__traceback__)),
        max_len=10000,
    )

    # Auto-detect module/function/line from the innermost traceback frame
    if exc.__traceback__ and not module:
        frame = exc.__traceback__
        while frame.tb_next:
            frame = frame.tb_next
        module = frame.tb_frame.f_code.co_filename
        function_name = function_name or frame.tb_frame.f_code.co_name
        line_number = line_number or frame.tb_lineno

    ctx = {str(k): v for k, v in (context or {}).items()}
    where = f" in {module}:{function_name}" if module and function_name else ""
    try:
        logger.log(level, "%s: %s%s %s", error_type, message, where, ctx or "", exc_info=exc)
    except Exception as log_err:
        # A broken handler must not take the batch down with it
        logger.warning("Failed to log error %s: %s", error_type, log_err)

    return ErrorRecord(
        error_type=error_type,
        message=message,
        traceback=traceback_str,
        module=_sanitize_text(module, max_len=300) if module else None,
        function_name=_sanitize_text(function_name, max_len=200) if function_name else None,
        line_number=line_number,
        context=ctx,
    )
