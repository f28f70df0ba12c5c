"""Parley CLI — assemble an input and show what would be sent."""

import asyncio
import logging
import signal
import sys
from typing import Optional

import click
from rich.console import Console

from parley import __version__

from .abort import AbortSignal
from .config import AppContext, load_settings
from .errors import describe_error
from .input import Input
from .role import Role

logger = logging.getLogger("parley.cli")
console = Console()
err_console = Console(stderr=True)

VIEWS = ("render", "raw", "summary", "text", "echo")


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if debug:
        logging.getLogger("parley").setLevel(logging.DEBUG)
    else:
        # Only warnings and errors in normal CLI use
        logging.getLogger("parley").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def _assemble(ctx: AppContext, text: str, files: tuple[str, ...], role: Optional[Role]) -> Input:
    if not files:
        return Input.from_str(ctx, text, role)

    abort_signal = AbortSignal()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort_signal.set_ctrlc)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False  # e.g. Windows; Ctrl-C then raises KeyboardInterrupt
    try:
        return await Input.from_files_with_spinner(ctx, text, list(files), role, abort_signal)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _run(text: tuple[str, ...], files: tuple[str, ...], prompt: Optional[str]) -> Input:
    settings = load_settings()
    ctx = AppContext(settings=settings)
    role = None
    if prompt:
        role = Role(
            name="cli",
            model=ctx.model(),
            prompt=prompt,
            temperature=settings.temperature,
            top_p=settings.top_p,
        )
    return asyncio.run(_assemble(ctx, " ".join(text), files, role))


def _fail(e: BaseException) -> None:
    logger.debug("Command failed", exc_info=e)
    err_console.print(f"[red]Error:[/red] {describe_error(e)}", highlight=False, soft_wrap=True)
    sys.exit(1)


_file_option = click.option(
    "-f", "--file", "files", multiple=True, metavar="REF",
    help="File, glob, directory, URL, `command` or %% (last reply). Repeatable.",
)
_prompt_option = click.option("--prompt", default=None, help="System prompt for an ad-hoc role")
_debug_option = click.option("--debug", is_flag=True, help="Debug logging")


@click.group()
@click.version_option(version=__version__, prog_name="parley")
def cli():
    """Parley — prompt input assembly for chat LLM APIs"""


@cli.command()
@_file_option
@_prompt_option
@click.option("--view", type=click.Choice(VIEWS), default="render", show_default=True,
              help="Which projection of the input to print")
@_debug_option
@click.argument("text", nargs=-1)
def show(files, prompt, view, debug, text):
    """Assemble an input and print one of its views."""
    _setup_logging(debug)
    try:
        input = _run(text, files, prompt)
    except Exception as e:
        _fail(e)
        return

    if view == "raw":
        output = input.raw()
    elif view == "summary":
        output = input.summary()
    elif view == "echo":
        output = input.echo_messages()
    elif view == "text":
        output = input.text
    else:
        output = input.render()
    console.print(output, markup=False, highlight=False, soft_wrap=True)


@cli.command()
@_file_option
@_prompt_option
@click.option("--stream/--no-stream", default=None, help="Override streaming")
@_debug_option
@click.argument("text", nargs=-1)
def payload(files, prompt, stream, debug, text):
    """Assemble an input and print the chat completion request as JSON."""
    _setup_logging(debug)
    try:
        input = _run(text, files, prompt)
        request = input.prepare_completion_data(stream=stream)
    except Exception as e:
        _fail(e)
        return
    console.print_json(data=request.to_dict())


def main():
    cli()


if __name__ == "__main__":
    main()
