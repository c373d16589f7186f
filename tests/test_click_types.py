"""CLI parameter types reject bad input at parse time"""

import click
import pytest
from click.testing import CliRunner

from pipeline.click_types import EVENT_RANGE, MONTH


class TestMonth:
    @pytest.mark.parametrize("value", ["2024-03", "2025-12"])
    def test_valid(self, value):
        assert MONTH.convert(value, None, None) == value

    @pytest.mark.parametrize("value", ["2024-3", "2024-13", "2024-00", "March 2024", ""])
    def test_invalid(self, value):
        with pytest.raises(click.BadParameter):
            MONTH.convert(value, None, None)


class TestEventRange:
    def test_valid(self):
        assert EVENT_RANGE.convert("1000-1200", None, None) == (1000, 1200)

    def test_tuple_passes_through(self):
        assert EVENT_RANGE.convert((5, 9), None, None) == (5, 9)

    @pytest.mark.parametrize("value", ["1200-1000", "1000-1000", "1000", "a-b"])
    def test_invalid(self, value):
        with pytest.raises(click.BadParameter):
            EVENT_RANGE.convert(value, None, None)

    def test_used_as_option_type(self):
        @click.command()
        @click.option("--discover", type=EVENT_RANGE)
        def cmd(discover):
            click.echo(f"{discover[0]}:{discover[1]}")

        result = CliRunner().invoke(cmd, ["--discover", "10-20"])
        assert result.exit_code == 0
        assert result.output.strip() == "10:20"

        result = CliRunner().invoke(cmd, ["--discover", "20-10"])
        assert result.exit_code == 2
