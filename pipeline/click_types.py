"""Click Custom Types for Pipeline CLI

Domain-specific type validators for Click commands.
Provides early validation at CLI parsing time with clear error messages.
"""

import re
import click


class MonthType(click.ParamType):
    """Validates a report month as YYYY-MM

    Valid examples:
    - 2024-03
    - 2025-11

    Invalid examples:
    - 2024-3 (month must be two digits)
    - 2024-13 (no such month)
    - March 2024
    """

    name = "month"

    def convert(self, value, param, ctx):
        """Validate month format at CLI parse time

        Args:
            value: User-provided month string
            param: Click parameter object
            ctx: Click context

        Returns:
            Valid YYYY-MM string

        Raises:
            click.BadParameter: If month format is invalid
        """
        if not value:
            self.fail("month cannot be empty", param, ctx)

        match = re.match(r'^(\d{4})-(\d{2})$', value)
        if not match or not 1 <= int(match.group(2)) <= 12:
            self.fail(f'{value!r} is not a valid month. Format: YYYY-MM (e.g., 2024-03)', param, ctx)

        return value


class EventRangeType(click.ParamType):
    """Validates an event id range START-STOP (stop exclusive)

    Valid examples:
    - 1000-1200
    - 0-50

    Invalid examples:
    - 1200-1000 (stop before start)
    - 1000 (no stop)
    """

    name = "event_range"

    def convert(self, value, param, ctx):
        if isinstance(value, tuple):
            return value

        match = re.match(r'^(\d+)-(\d+)$', value or "")
        if not match:
            self.fail(f'{value!r} is not a valid event range. Format: START-STOP (e.g., 1000-1200)', param, ctx)

        start, stop = int(match.group(1)), int(match.group(2))
        if stop <= start:
            self.fail(f'event range {value!r} is empty: STOP must be greater than START', param, ctx)

        return start, stop


MONTH = MonthType()
EVENT_RANGE = EventRangeType()
