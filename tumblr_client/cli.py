"""CLI entry point for the Tumblr client."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import click

from . import __version__
from .client import TumblrClient
from .config import ConfigError, TumblrConfig, load_config
from .output import OutputHandler

# Logger for CLI
logger = logging.getLogger("tumblr")

T = TypeVar("T")


class CommandFailed(Exception):
    """A request completed but the API reported a failure."""

    pass


@click.group()
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, json_mode: bool, env_path: str | None, verbose: bool) -> None:
    """Tumblr client - read and manage blog posts over OAuth 1.0a."""
    ctx.ensure_object(dict)
    ctx.obj["json_mode"] = json_mode
    ctx.obj["env_path"] = Path(env_path) if env_path else None
    ctx.obj["output"] = OutputHandler(json_mode)

    # Configure logging based on verbosity
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def get_config(ctx: click.Context) -> TumblrConfig:
    """Get config from context, handling errors."""
    output: OutputHandler = ctx.obj["output"]
    try:
        return load_config(ctx.obj["env_path"])
    except ConfigError as e:
        output.error(e, help_text=e.help_text)


def build_client(config: TumblrConfig, output: OutputHandler) -> TumblrClient:
    """Create a client from configuration."""
    return TumblrClient(
        config.consumer_key,
        config.consumer_secret,
        api_base=config.api_base,
        request_token_url=config.request_token_url,
        authorize_url=config.authorize_url,
        access_token_url=config.access_token_url,
        callback_timeout=config.callback_timeout,
        on_status=output.status,
    )


def run_with_client(ctx: click.Context, operation: Callable[[TumblrClient], Awaitable[T]]) -> T:
    """Run an async operation against a fresh client."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)

    async def _run() -> T:
        async with build_client(config, output) as client:
            return await operation(client)

    try:
        return asyncio.run(_run())
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        output.error(e, help_text="Check your network connection and try again with --verbose.")


def read_payload(path: str) -> dict[str, Any]:
    """Load a JSON post payload from a file."""
    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Post payload is not valid JSON: {e}", param_hint="FILE")
    if not isinstance(data, dict):
        raise click.BadParameter("Post payload must be a JSON object", param_hint="FILE")
    return data


@main.command()
@click.pass_context
def login(ctx: click.Context) -> None:
    """Authorize this application in the browser.

    Tokens are kept in memory only, so this checks that the grant flow works.
    """
    output: OutputHandler = ctx.obj["output"]
    if not run_with_client(ctx, lambda client: client.ensure_user_auth()):
        output.error(CommandFailed("Authentication failed"))
    output.success({"authenticated": True}, "Authentication succeeded")


def _list_command(
    ctx: click.Context,
    fetch: Callable[[TumblrClient], Awaitable[list[dict[str, Any]]]],
) -> None:
    output: OutputHandler = ctx.obj["output"]
    posts = run_with_client(ctx, fetch)
    output.posts(posts)


@main.command()
@click.argument("blog")
@click.option("--limit", "-l", default=0, help="Stop after at least this many posts (0 for all)")
@click.option("--user-auth", is_flag=True, help="Read as the authenticated user")
@click.pass_context
def posts(ctx: click.Context, blog: str, limit: int, user_auth: bool) -> None:
    """List the published posts of BLOG."""
    _list_command(ctx, lambda client: client.get_posts(blog, user_auth, limit))


@main.command()
@click.argument("blog")
@click.pass_context
def drafts(ctx: click.Context, blog: str) -> None:
    """List the drafts of BLOG."""
    _list_command(ctx, lambda client: client.get_drafts(blog))


@main.command()
@click.argument("blog")
@click.pass_context
def queue(ctx: click.Context, blog: str) -> None:
    """List the queued posts of BLOG."""
    _list_command(ctx, lambda client: client.get_queue(blog))


@main.command()
@click.argument("blog")
@click.pass_context
def submissions(ctx: click.Context, blog: str) -> None:
    """List the submissions to BLOG."""
    _list_command(ctx, lambda client: client.get_submissions(blog))


@main.command()
@click.argument("blog")
@click.argument("post_id")
@click.option("--user-auth", is_flag=True, help="Read as the authenticated user")
@click.pass_context
def get(ctx: click.Context, blog: str, post_id: str, user_auth: bool) -> None:
    """Show a single post of BLOG."""
    output: OutputHandler = ctx.obj["output"]
    post = run_with_client(ctx, lambda client: client.get_post(blog, post_id, user_auth))
    if post is None:
        output.error(CommandFailed(f"Could not retrieve post {post_id} from {blog}"))
    output.success(post)


@main.command()
@click.argument("blog")
@click.argument("payload", metavar="FILE", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def create(ctx: click.Context, blog: str, payload: str) -> None:
    """Create a post on BLOG from a JSON FILE."""
    output: OutputHandler = ctx.obj["output"]
    data = read_payload(payload)
    post_id = run_with_client(ctx, lambda client: client.create_post(blog, data))
    if post_id is None:
        output.error(CommandFailed(f"Could not create post on {blog}"))
    output.success({"id": post_id}, f"Created post {post_id}")


@main.command()
@click.argument("blog")
@click.argument("post_id")
@click.argument("payload", metavar="FILE", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def update(ctx: click.Context, blog: str, post_id: str, payload: str) -> None:
    """Update post POST_ID on BLOG from a JSON FILE."""
    output: OutputHandler = ctx.obj["output"]
    data = read_payload(payload)
    updated_id = run_with_client(ctx, lambda client: client.update_post(blog, post_id, data))
    if updated_id is None:
        output.error(CommandFailed(f"Could not update post {post_id} on {blog}"))
    output.success({"id": updated_id}, f"Updated post {updated_id}")


@main.command()
@click.argument("blog")
@click.argument("post_id")
@click.pass_context
def delete(ctx: click.Context, blog: str, post_id: str) -> None:
    """Delete post POST_ID from BLOG."""
    output: OutputHandler = ctx.obj["output"]
    if not run_with_client(ctx, lambda client: client.delete_post(blog, post_id)):
        output.error(CommandFailed(f"Could not delete post {post_id} from {blog}"))
    output.success({"id": post_id, "deleted": True}, f"Deleted post {post_id}")


if __name__ == "__main__":
    main()
