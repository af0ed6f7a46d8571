import json
import sys

from dotenv import load_dotenv
from loguru import logger

from context_store.app_config import load_json_config, parse_store_config
from context_store.commands import CommandDispatcher
from context_store.engine import ContextStore
from context_store.errors import StorageError
from context_store.logging_config import setup_logging


def parse_command_line(text: str) -> tuple[str, dict]:
    """Split ``method {json params}`` into its parts."""
    method, _, raw_params = text.strip().partition(" ")
    raw_params = raw_params.strip()
    if not raw_params:
        return method, {}
    params = json.loads(raw_params)
    if not isinstance(params, dict):
        raise ValueError("params must be a JSON object")
    return method, params


def _print_envelope(envelope: dict) -> None:
    print(json.dumps(envelope, indent=2, ensure_ascii=False))


def _run_interactive(dispatcher: CommandDispatcher) -> None:
    print(f"context-store (type 'exit' to quit). Commands: {', '.join(dispatcher.methods)}")
    while True:
        try:
            line = input("store> ")
        except (EOFError, KeyboardInterrupt):
            break

        trimmed = line.strip()
        if trimmed in ("exit", "quit"):
            break
        if not trimmed:
            continue

        try:
            method, params = parse_command_line(trimmed)
        except ValueError as ex:
            print(f"Invalid params: {ex}")
            continue
        _print_envelope(dispatcher.dispatch(method, params))


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = sys.argv[1:] if argv is None else argv

    config = parse_store_config(load_json_config())
    setup_logging(level=config.log_level, consumers=config.log_consumers)

    try:
        store = ContextStore(config)
    except StorageError as ex:
        logger.error(f"Cannot open store: {ex}")
        return 1

    try:
        dispatcher = CommandDispatcher(store)
        if not args:
            _run_interactive(dispatcher)
            return 0

        try:
            method, params = parse_command_line(" ".join(args))
        except ValueError as ex:
            logger.error(f"Invalid params: {ex}")
            return 2
        envelope = dispatcher.dispatch(method, params)
        _print_envelope(envelope)
        return 0 if envelope["success"] else 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
