"""Shared configuration and error-handling helpers for MCP tools."""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from fastmcp.exceptions import ToolError

from _constants import DEFAULT_DISPLAY_TIMEZONE, DEFAULT_SUBJECT_ID
from errors import InvalidRequest, StoreUnavailable

logger = logging.getLogger("meditrack.server")

P = ParamSpec("P")
R = TypeVar("R")


def subject_id() -> str:
    """The tracked subject for this deployment."""
    return os.environ.get("MEDITRACK_SUBJECT_ID", DEFAULT_SUBJECT_ID)


def display_timezone() -> str:
    return os.environ.get("DISPLAY_TIMEZONE", DEFAULT_DISPLAY_TIMEZONE)


def tool_error_handler(
    error_message: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator that wraps MCP tool functions with standard error handling.

    Converts ValueError and InvalidRequest to ToolError (preserving message),
    StoreUnavailable to a retry-suggesting ToolError, and catches all other
    exceptions with a generic message.
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await fn(*args, **kwargs)
            except ToolError:
                raise
            except InvalidRequest as exc:
                raise ToolError(exc.message) from exc
            except ValueError as exc:
                raise ToolError(str(exc)) from exc
            except StoreUnavailable as exc:
                logger.warning("%s failed: %s", fn.__name__, exc)
                raise ToolError(
                    "Medication log store is temporarily unavailable. Please try again."
                ) from exc
            except Exception:
                logger.exception("%s failed", fn.__name__)
                raise ToolError(error_message) from None

        return wrapper

    return decorator
