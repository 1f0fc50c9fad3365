"""
Date/time tool for the Aether agent loop.

Returns the current date and time, optionally for a named IANA timezone.
It needs no external service, which makes it the default built-in tool and
a reference for writing others.

The ``DateTimeTool`` class exposes:

- ``DateTimeTool.TOOL_SCHEMA``: a ``ToolSchema`` ready to register.
- ``DateTimeTool.get_datetime(timezone_name)``: returns the current date
  and time as a dict.
- ``DateTimeTool.as_handler()``: an async callable for ``ToolRegistry``.

Without a timezone the local system zone is used.  An unrecognised timezone
falls back to UTC and the result carries an ``"error"`` field describing the
problem instead of failing the call.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from aether.conversation.messages import JSONValue, ToolSchema
from aether.conversation.tools.registry import AsyncToolHandler

logger = logging.getLogger(__name__)


class DateTimeTool:
    """Returns the current date and time, with optional timezone support.

    Attributes:
        TOOL_SCHEMA: Ready-to-use ``ToolSchema`` for ``ToolRegistry``.
    """

    TOOL_SCHEMA: ToolSchema = ToolSchema.build(
        name="getCurrentDateTime",
        description=(
            "Retrieves the current system date, time, and timezone. "
            "Use this when the user asks 'what time is it?' or 'what is the date?'. "
            "Optionally accepts an IANA timezone name such as 'America/New_York'."
        ),
        properties={
            "timezone": {
                "type": "string",
                "description": (
                    "IANA timezone name, e.g. 'Europe/Paris' or 'Asia/Tokyo'. "
                    "Omit for the local system timezone."
                ),
            }
        },
    )

    def __init__(self, clock: Callable[[tzinfo | None], datetime] | None = None) -> None:
        # Injected in tests to freeze time.
        self._clock = clock or (lambda tz: datetime.now(tz=tz))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_datetime(self, timezone_name: str | None = None) -> dict[str, Any]:
        """Return the current date and time.

        Args:
            timezone_name: IANA timezone name.  ``None`` or an empty string
                means the local system timezone.

        Returns:
            A dict with keys ``datetime_iso``, ``date``, ``time``,
            ``timezone``, ``day_of_week``, ``formatted`` (a long human
            readable form) and ``unix_timestamp``; plus ``error`` when the
            requested timezone was invalid.
        """
        tz, tz_error = self._resolve_timezone(timezone_name)
        now = self._clock(tz)
        if tz is None:
            now = now.astimezone()

        result: dict[str, Any] = {
            "datetime_iso": now.isoformat(timespec="seconds"),
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
            "timezone": str(tz) if tz is not None else (now.tzname() or "local"),
            "day_of_week": now.strftime("%A"),
            "formatted": now.strftime("%A, %B %d, %Y at %H:%M:%S %Z").strip(),
            "unix_timestamp": int(now.timestamp()),
        }
        if tz_error:
            result["error"] = tz_error
        return result

    def as_handler(self) -> AsyncToolHandler:
        """Return an async callable for use with ``ToolRegistry``.

        Usage::

            dt = DateTimeTool()
            registry.register(DateTimeTool.TOOL_SCHEMA, dt.as_handler())
        """

        async def _call(args: dict[str, JSONValue]) -> str:
            tz_name = args.get("timezone")
            result = await self.get_datetime(tz_name if isinstance(tz_name, str) else None)
            return json.dumps(result)

        return _call

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolve_timezone(self, timezone_name: str | None) -> tuple[tzinfo | None, str | None]:
        """Resolve *timezone_name*; ``None`` means local time.

        Returns:
            ``(tz_object_or_None, error_message_or_None)``
        """
        if not timezone_name or not timezone_name.strip():
            return None, None

        try:
            return ZoneInfo(timezone_name.strip()), None
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone: %r; falling back to UTC", timezone_name)
            return timezone.utc, f"Unknown timezone {timezone_name!r}; showing UTC instead."


__all__ = ["DateTimeTool"]
