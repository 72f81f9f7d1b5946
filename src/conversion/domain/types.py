"""Domain types — NewType aliases for type-safe values."""

from typing import NewType

CommandLine = NewType("CommandLine", str)
