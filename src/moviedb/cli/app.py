"""Command dispatcher and interactive shell for moviedb."""

from __future__ import annotations

import asyncio
import atexit
import logging
import shlex
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.logging import RichHandler

from ..core.config import ClientConfig
from ..core.errors import MovieDbError, TransportFailure
from ..core.models import HttpMethod, Params, RequestOptions
from ..services.client import MovieDb

console = Console()

PROMPT = "tmdb> "


class CommandError(Exception):
    """Raised when command parsing or validation fails."""


_GLOBAL_LOOP = asyncio.new_event_loop()
asyncio.set_event_loop(_GLOBAL_LOOP)


def _shutdown_loop() -> None:
    pending = [task for task in asyncio.all_tasks(_GLOBAL_LOOP) if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        _GLOBAL_LOOP.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    _GLOBAL_LOOP.close()


atexit.register(_shutdown_loop)


def _run(coro):
    return _GLOBAL_LOOP.run_until_complete(coro)


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _mode_tag(config: ClientConfig) -> str:
    return "LIMITED" if config.use_default_limits else "DIRECT"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@dataclass(slots=True)
class CliSession:
    """Context manager owning the client for one CLI run."""

    client: MovieDb

    @classmethod
    def create(cls, limits_override: Optional[bool]) -> "CliSession":
        overrides = {}
        if limits_override is not None:
            overrides["use_default_limits"] = limits_override
        config = ClientConfig.load(overrides)
        return cls(client=MovieDb.build(config))

    def __enter__(self) -> "CliSession":
        if not self.client.config.credentials.api_key:
            console.print("[yellow]Warning[/yellow]: no API key configured (set MOVIEDB_API_KEY).")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        _run(self.client.aclose())


class CommandDispatcher:
    """Parse and execute API commands."""

    def __init__(self, session: CliSession) -> None:
        self.session = session
        self.client = session.client

    def execute(self, tokens: Sequence[str]) -> int:
        if not tokens:
            return 0
        command = tokens[0].lower()
        handler = getattr(self, f"do_{command}", None)
        if handler is None:
            raise CommandError(f"Unknown command: {command}")
        return handler(tokens[1:]) or 0

    def do_help(self, _: Sequence[str]) -> int:
        console.print("Available commands: get, post, put, delete, token, quota, help, quit")
        console.print("Usage: get ENDPOINT [VALUE | key=value ...] [--append a,b] [--timeout MS]")
        console.print("Use --limits or --no-limits when launching to toggle quota tracking. Ctrl+D or 'quit' exits.")
        return 0

    def do_get(self, args: Sequence[str]) -> int:
        return self._request(HttpMethod.GET, args)

    def do_post(self, args: Sequence[str]) -> int:
        return self._request(HttpMethod.POST, args)

    def do_put(self, args: Sequence[str]) -> int:
        return self._request(HttpMethod.PUT, args)

    def do_delete(self, args: Sequence[str]) -> int:
        return self._request(HttpMethod.DELETE, args)

    def do_token(self, _: Sequence[str]) -> int:
        token = _run(self.client.request_token())
        expires = token.expires_at.strftime("%Y-%m-%d %H:%M:%S") if token.expires_at else "--"
        console.print(f"[{_timestamp()}] TOKEN {token.request_token} expires={expires}")
        return 0

    def do_quota(self, _: Sequence[str]) -> int:
        stats = self.client.quota()
        mode = _mode_tag(self.client.config)
        if not stats.get("rate_limited"):
            console.print(f"[{_timestamp()}] {mode} quota tracking disabled (in_flight={stats['in_flight']})")
            return 0
        console.print(
            f"[{_timestamp()}] {mode} remaining={stats['remaining']}/{stats['ceiling']} "
            f"reset_in={stats['reset_in']:.1f}s queued={stats['queued']} in_flight={stats['in_flight']}"
        )
        return 0

    def do_quit(self, _: Sequence[str]) -> int:
        raise SystemExit(0)

    do_exit = do_quit

    # Parsing helpers -------------------------------------------------

    def _request(self, method: HttpMethod, args: Sequence[str]) -> int:
        endpoint, params, options = self._parse_request_args(args, method.value.lower())
        response = _run(self.client.submit(method, endpoint, params, options))
        console.print(f"[{_timestamp()}] {_mode_tag(self.client.config)} {method.value} {endpoint} -> {response.status}")
        self._render_data(response.data)
        return 0

    def _parse_request_args(self, args: Sequence[str], action: str) -> Tuple[str, Params, RequestOptions]:
        if not args:
            raise CommandError(f"Usage: {action} ENDPOINT [VALUE | key=value ...] [--append a,b] [--timeout MS]")
        endpoint = args[0]
        append: List[str] = []
        timeout: Optional[int] = None
        positional: List[str] = []
        remaining = list(args[1:])
        while remaining:
            token = remaining.pop(0)
            if token in {"--append", "--timeout"}:
                if not remaining:
                    raise CommandError(f"{token} expects a value")
                value = remaining.pop(0)
                if token == "--append":
                    append.extend(part.strip() for part in value.split(",") if part.strip())
                else:
                    timeout = self._parse_int(value, "timeout", minimum=1)
                continue
            positional.append(token)
        return endpoint, self._parse_params(positional), RequestOptions(timeout=timeout, append_to_response=tuple(append))

    def _parse_params(self, tokens: Sequence[str]) -> Params:
        if not tokens:
            return None
        pairs = [token for token in tokens if "=" in token]
        if not pairs:
            if len(tokens) > 1:
                raise CommandError("Pass a single VALUE or key=value pairs")
            return tokens[0]
        if len(pairs) != len(tokens):
            raise CommandError("Cannot mix a bare VALUE with key=value pairs")
        params: Dict[str, Any] = {}
        for token in pairs:
            key, _, value = token.partition("=")
            if not key:
                raise CommandError(f"Invalid parameter {token!r}")
            params[key] = value
        return params

    def _parse_int(self, token: str, label: str, *, minimum: int = 0) -> int:
        try:
            value = int(token)
        except ValueError as exc:
            raise CommandError(f"Invalid {label}; expected integer") from exc
        if value < minimum:
            raise CommandError(f"{label} must be >= {minimum}")
        return value

    def _render_data(self, data: Any) -> None:
        if data is None:
            console.print("<empty>")
        elif isinstance(data, (dict, list)):
            console.print_json(data=data)
        else:
            console.print(str(data))


def _extract_launch_flags(argv: Sequence[str]) -> Tuple[Optional[bool], bool, List[str]]:
    limits_override: Optional[bool] = None
    verbose = False
    remaining: List[str] = []
    for arg in argv:
        if arg == "--limits":
            limits_override = True
            continue
        if arg == "--no-limits":
            limits_override = False
            continue
        if arg in {"-v", "--verbose"}:
            verbose = True
            continue
        if arg in {"-h", "--help"}:
            return limits_override, verbose, ["help"]
        remaining.append(arg)
    return limits_override, verbose, remaining


def _report_failure(exc: MovieDbError) -> None:
    if isinstance(exc, TransportFailure) and exc.status is not None:
        console.print(f"HTTP error {exc.status}: {exc.data}")
    else:
        console.print(f"Error: {exc}")


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(argv if argv is not None else sys.argv[1:])
    limits_override, verbose, remaining = _extract_launch_flags(argv)
    _configure_logging(verbose)

    if not remaining:
        return run_repl(limits_override)

    with CliSession.create(limits_override) as session:
        dispatcher = CommandDispatcher(session)
        try:
            return dispatcher.execute(remaining)
        except CommandError as exc:
            console.print(f"Error: {exc}")
            return 1
        except MovieDbError as exc:
            _report_failure(exc)
            return 1


def _prompt_tokens() -> Optional[List[str]]:
    """Read one command line; ``None`` when there is nothing to run."""

    try:
        line = input(PROMPT)
    except KeyboardInterrupt:
        console.print("\nInterrupted. Type 'quit' to exit.")
        return None
    try:
        return shlex.split(line) or None
    except ValueError as exc:
        console.print(f"Parse error: {exc}")
        return None


def run_repl(limits_override: Optional[bool] = None) -> int:
    with CliSession.create(limits_override) as session:
        dispatcher = CommandDispatcher(session)
        console.print("Type 'help' for available commands, 'quit' to exit.")
        while True:
            try:
                tokens = _prompt_tokens()
            except EOFError:
                console.print("\nExited.")
                return 0
            if tokens is None:
                continue
            try:
                dispatcher.execute(tokens)
            except SystemExit:
                console.print("Bye.")
                return 0
            except CommandError as exc:
                console.print(f"Error: {exc}")
            except MovieDbError as exc:
                _report_failure(exc)


__all__ = ["run_cli", "run_repl"]
