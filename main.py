import argparse
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from typing import List

from ghcopilot.cancel import CancelToken
from ghcopilot.config import Config, load_config

logger = logging.getLogger("ghcopilot")

# Longest single line accepted from piped stdin.
MAX_STDIN_LINE = 1024 * 1024


@dataclass
class Arguments:
    prompts: List[str] = field(default_factory=list)
    model: str = ""
    command: str = ""
    plain_text: bool = False
    debug: bool = False


def should_use_plain_text(cfg: Config, stdout=None) -> bool:
    """Plain output when configured, redirected, NO_COLOR is set or TERM=dumb."""

    if cfg.render.format == "plain":
        return True

    stdout = stdout or sys.stdout
    isatty = getattr(stdout, "isatty", None)
    if isatty is None or not isatty():
        return True

    if "NO_COLOR" in os.environ:
        return True

    return os.getenv("TERM") == "dumb"


def _read_piped_stdin(stdin) -> str | None:
    if stdin is None or stdin.isatty():
        return None

    lines = []
    while True:
        line = stdin.readline(MAX_STDIN_LINE + 1)
        if not line:
            break
        if len(line.rstrip("\r\n")) > MAX_STDIN_LINE:
            raise ValueError("failed to read stdin: line too long")
        lines.append(line)
    return "".join(lines).strip()


def parse_args(argv: list[str] | None, cfg: Config, stdin=None) -> Arguments:
    parser = argparse.ArgumentParser(description="Ask GitHub Copilot from the command line")
    parser.add_argument("--model", "-m", default=cfg.model, help="The AI model to use")
    parser.add_argument("-c", dest="command", default="", help="Use a predefined command from config")
    parser.add_argument(
        "--plain",
        action="store_true",
        default=should_use_plain_text(cfg),
        help="Disable markdown rendering",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging output.")
    parser.add_argument("prompt", nargs="?", default=None, help="Prompt to send")

    args = parser.parse_args(argv)

    prompts: list[str] = []
    piped = _read_piped_stdin(sys.stdin if stdin is None else stdin)
    if piped:
        prompts.append(piped)
    if args.prompt:
        prompts.append(args.prompt)

    if not args.command and not prompts:
        raise ValueError("no prompt or command provided")

    model = args.model
    if args.command and prompts:
        cmd_prompt = cfg.prompts.get(args.command)
        if cmd_prompt is None:
            raise ValueError(f"command '{args.command}' not found in config")
        prompts.append(cmd_prompt.prompt)
        if cmd_prompt.model:
            model = cmd_prompt.model

    return Arguments(
        prompts=prompts,
        model=model,
        command=args.command,
        plain_text=args.plain,
        debug=args.debug,
    )


def _configure_logging(debug: bool) -> None:
    # Configure logging ONLY if debug is enabled
    if not debug:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    for noisy in ("urllib3", "requests", "markdown_it"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _install_signal_handler(cancel_token: CancelToken):
    def signal_handler(*_):
        # First Ctrl-C cancels cooperatively; a second one exits right away.
        if cancel_token.cancelled:
            raise KeyboardInterrupt
        cancel_token.cancel("interrupted")

    return signal.signal(signal.SIGINT, signal_handler)


def _build_renderer(cfg: Config, args: Arguments, cancel_token: CancelToken):
    # Local imports keep `--help` fast.
    from ghcopilot.markdown_render import MarkdownRenderer
    from ghcopilot.terminal_renderer import TerminalRenderer

    markdown = None
    if not args.plain_text:
        wrap_width = cfg.render.wrap_width if cfg.render.wrap_lines and cfg.render.wrap_width >= 0 else None
        markdown = MarkdownRenderer(theme=cfg.render.theme, wrap_width=wrap_width)
    return TerminalRenderer(cancel_token, markdown=markdown)


def _build_client(cfg: Config):
    from ghcopilot.client import CopilotClient

    return CopilotClient(cfg.http)


def run(argv: list[str] | None = None) -> None:
    cfg = load_config()
    args = parse_args(argv, cfg)
    _configure_logging(args.debug)
    logger.debug("model=%s prompts=%d plain=%s", args.model, len(args.prompts), args.plain_text)

    cancel_token = CancelToken()
    cancel_token.set_deadline(cfg.context_timeout)
    previous_handler = _install_signal_handler(cancel_token)

    client = _build_client(cfg)
    try:
        renderer = _build_renderer(cfg, args, cancel_token)
        client.ask(args.prompts, args.model, renderer, cancel_token)
    finally:
        client.close()
        cancel_token.close()
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)


def main(argv: list[str] | None = None) -> int:
    try:
        run(argv)
    except KeyboardInterrupt:
        print("Error: interrupted", file=sys.stderr)
        return 130
    except Exception as e:
        logger.debug("request failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
