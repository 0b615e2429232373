"""Rendering of command results as JSON envelopes or terminal text."""

import json
import sys
from typing import Any, NoReturn

import click

POST_COLUMNS = ["ID", "TYPE", "SUMMARY"]
SUMMARY_WIDTH = 60


def format_json(data: Any, success: bool = True) -> str:
    """Wrap data in the {"success": ..., "data": ...} envelope.

    With success=False, data is taken to be a complete error envelope.
    """
    envelope = {"success": True, "data": data} if success else data
    return json.dumps(envelope, indent=2, default=str)


def format_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> str:
    envelope = {
        "success": False,
        "error": {
            "type": error_type or type(error).__name__,
            "message": str(error),
            "help": help_text or "",
        },
    }
    return format_json(envelope, success=False)


def summarize_post(post: dict[str, Any]) -> list[str]:
    """Reduce a post to the columns shown in tables."""
    summary = " ".join(str(post.get("summary") or "").splitlines())
    if len(summary) > SUMMARY_WIDTH:
        summary = summary[: SUMMARY_WIDTH - 3] + "..."
    post_id = post.get("id_string") or post.get("id", "")
    return [str(post_id), str(post.get("type", "")), summary]


def format_table(headers: list[str], rows: list[list[str]]) -> list[str]:
    """Lay out rows in left-aligned columns, header first."""
    widths = [
        max([len(header)] + [len(row[i]) for row in rows])
        for i, header in enumerate(headers)
    ]

    def line(cells: list[str]) -> str:
        return "  ".join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()

    header = line(headers)
    return [header, "-" * len(header)] + [line(row) for row in rows]


class OutputHandler:
    """Writes results for either --json mode or a terminal user.

    JSON mode writes a single envelope to stdout. Human mode writes text to
    stdout and progress/errors to stderr.
    """

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode

    def success(self, data: Any, human_message: str | None = None) -> None:
        if self.json_mode:
            click.echo(format_json(data))
        else:
            click.echo(human_message or json.dumps(data, indent=2, default=str))

    def error(
        self,
        error: Exception,
        error_type: str | None = None,
        help_text: str | None = None,
    ) -> NoReturn:
        """Report an error and exit with status 1."""
        if self.json_mode:
            click.echo(format_error_json(error, error_type, help_text))
        else:
            click.secho(f"Error: {error}", fg="red", err=True)
            if help_text:
                click.echo(f"\n{help_text}", err=True)
        sys.exit(1)

    def status(self, message: str) -> None:
        """Show a progress message (human mode only)."""
        if not self.json_mode:
            click.secho(message, fg="cyan", err=True)

    def posts(self, posts: list[dict[str, Any]]) -> None:
        """Show a post list as a table with a count, or as raw JSON."""
        if self.json_mode:
            click.echo(format_json(posts))
            return

        header, rule, *rows = format_table(POST_COLUMNS, [summarize_post(p) for p in posts])
        click.secho(header, bold=True)
        click.echo(rule)
        for row in rows:
            click.echo(row)
        click.echo(f"\n{len(posts)} post{'' if len(posts) == 1 else 's'}")
