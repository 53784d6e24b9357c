"""Tool result shared by the MCP server and the CLI."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ToolResult:
    """Human-readable text plus an error flag."""

    text: str
    is_error: bool = False

    @classmethod
    def ok(cls, text: str) -> "ToolResult":
        return cls(text=text)

    @classmethod
    def error(cls, text: str) -> "ToolResult":
        return cls(text=text, is_error=True)
