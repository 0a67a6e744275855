"""Run Lua files and query their globals from the command line."""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import lupa

from luatyped.luatyped_config import SessionOptions
from luatyped.luatyped_datatypes import LuaTypedError, ValueType
from luatyped.luatyped_printer import Printer
from luatyped.luatyped_runtime import ContainerHandle, Session
from luatyped.luatyped_serialize import dump, snapshot

PROMPT = ">> "


# A basic input prompt; returns "" at end of input.
def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def parse_query(text: str) -> Tuple[str, ValueType]:
    """Split ``name[:type]`` into a global name and a value type (default ``kind``)."""
    name, sep, type_name = text.partition(":")
    if not name:
        raise ValueError(f"missing global name in {text!r}")
    if not sep:
        return name, ValueType.KIND
    try:
        return name, ValueType(type_name)
    except ValueError:
        choices = ", ".join(t.value for t in ValueType)
        raise ValueError(f"unknown type {type_name!r} (choose from {choices})") from None


def format_global(session: Session, printer: Printer, name: str, value_type: ValueType) -> str:
    value = session.get_global(name, value_type)
    if isinstance(value, ContainerHandle):
        with value:
            return printer.pformat(snapshot(value))
    return printer.pformat(value)


def run_script_file(session: Session, file_path: str, queries: List[str]) -> int:
    """Run a Lua file non-interactively, print the queried globals and return an exit status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        return 1
    ok, message = session.run_chunk(source)
    if not ok:
        print(message, file=sys.stderr)
        return 1

    printer = Printer()
    status = 0
    for query in queries:
        try:
            name, value_type = parse_query(query)
            print(f"{name} = {format_global(session, printer, name, value_type)}")
        except (LuaTypedError, ValueError, lupa.LuaError) as e:
            print(f"Error: {e}", file=sys.stderr)
            status = 1
    return status


def _handle_command(session: Session, printer: Printer, line: str) -> None:
    command, _, rest = line.partition(" ")
    args = rest.split()
    if command == ":get" and 1 <= len(args) <= 2:
        value_type = ValueType(args[1]) if len(args) == 2 else ValueType.KIND
        print(format_global(session, printer, args[0], value_type))
    elif command == ":dump" and 1 <= len(args) <= 2:
        fmt = args[1] if len(args) == 2 else "json"
        with session.get_global(args[0], ValueType.CONTAINER) as handle:
            print(dump(handle, fmt).rstrip("\n"))
    else:
        print("Usage: :get NAME [TYPE] | :dump NAME [json|yaml]", file=sys.stderr)


def repl(session: Session) -> int:
    print(f"luatyped REPL ({session.lua_implementation})")
    print("Type 'exit' or press Ctrl+D to quit.")
    printer = Printer()

    while True:
        try:
            raw = read_line(PROMPT)
        except KeyboardInterrupt:
            print("\nExiting.")
            break
        if raw == "":
            print("\nExiting.")
            break
        line = raw.strip()
        if not line:
            continue
        if line == "exit":
            break

        if line.startswith(":"):
            try:
                _handle_command(session, printer, line)
            except (LuaTypedError, ValueError, lupa.LuaError) as e:
                print(f"Error: {e}", file=sys.stderr)
            continue

        ok, message = session.run_chunk(line)
        if not ok:
            print(message, file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="luatyped",
        description="Run a Lua file and print typed globals, or start a REPL.",
    )
    parser.add_argument("file", nargs="?", help="Lua source file to run")
    parser.add_argument("queries", nargs="*", metavar="NAME[:TYPE]",
                        help="globals to print after the run (types: %s)"
                        % ", ".join(t.value for t in ValueType))
    parser.add_argument("--config", type=Path, help="YAML or JSON file with session options")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    try:
        options = SessionOptions.load(args.config) if args.config else SessionOptions()
    except (OSError, ValueError) as e:
        print(f"Error: cannot load config: {e}", file=sys.stderr)
        return 1

    try:
        session = Session(options)
    except LuaTypedError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with session:
        session.load_standard_library()
        if args.file:
            return run_script_file(session, args.file, args.queries)
        return repl(session)


if __name__ == "__main__":
    sys.exit(main())
