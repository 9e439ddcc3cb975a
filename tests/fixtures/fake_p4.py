#!/usr/bin/env python3
"""Fake p4 for integration testing.

This script impersonates ``p4 -G``: it strips the global options, reads
stdin to EOF, and answers a handful of commands with tagged records written
in the marshal format.

Usage:
    python fake_p4.py [-G] [-c CLIENT] [-p PORT] [-u USER] COMMAND [ARGS...]

Commands:
    info            one stat mapping describing the connection
    argv            one mapping with every argument received
    env NAME        one mapping with the value of an environment variable
    echo            copy stdin to stdout unchanged
    banner TEXT     free text, then one stat mapping
    print           a stat mapping followed by two text chunks
    count N         N mappings carrying an integer value
    stderr TEXT     one stat mapping on stdout, TEXT on stderr
    sleep SECONDS   sleep, then one stat mapping
    truncated       a mapping cut off in the middle of a string
    exit CODE       one error mapping, then exit with CODE
    set             plain ``NAME=value (set)`` lines, like the real p4
"""

from __future__ import annotations

import os
import struct
import sys
import time
from typing import NoReturn

GLOBAL_FLAGS = ("-c", "-p", "-u")


def pack(mapping: dict) -> bytes:
    """Encode one mapping; ints use the i tag."""
    out = [b"{"]
    for key, value in mapping.items():
        k = key.encode("utf-8")
        out.append(b"s" + struct.pack("<I", len(k)) + k)
        if isinstance(value, int):
            out.append(b"i" + struct.pack("<I", value))
        else:
            v = str(value).encode("utf-8")
            out.append(b"s" + struct.pack("<I", len(v)) + v)
    out.append(b"0")
    return b"".join(out)


def emit(*mappings: dict) -> None:
    for mapping in mappings:
        sys.stdout.buffer.write(pack(mapping))
    sys.stdout.buffer.flush()


def parse_args(argv: list[str]) -> tuple[bool, dict[str, str], list[str]]:
    tagged = False
    flags: dict[str, str] = {}
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == "-G":
            tagged = True
            i += 1
        elif arg in GLOBAL_FLAGS and i + 1 < len(argv):
            flags[arg] = argv[i + 1]
            i += 2
        else:
            break
    return tagged, flags, argv[i:]


def main() -> NoReturn:
    """Main entry point."""
    tagged, flags, rest = parse_args(sys.argv[1:])
    command, args = (rest[0], rest[1:]) if rest else ("help", [])

    # Always consume stdin so writers never see a broken pipe
    stdin_data = sys.stdin.buffer.read() if not sys.stdin.isatty() else b""

    exit_code = 0

    if command == "info":
        emit({
            "code": "stat",
            "userName": flags.get("-u", os.environ.get("P4USER", "")),
            "clientName": flags.get("-c", os.environ.get("P4CLIENT", "")),
            "serverAddress": flags.get("-p", os.environ.get("P4PORT", "")),
            "clientCwd": os.getcwd(),
            "tagged": "yes" if tagged else "no",
        })
    elif command == "argv":
        emit({f"arg{n}": value for n, value in enumerate(sys.argv[1:])})
    elif command == "env":
        name = args[0] if args else ""
        emit({"code": "stat", "name": name, "value": os.environ.get(name, "")})
    elif command == "echo":
        sys.stdout.buffer.write(stdin_data)
        sys.stdout.buffer.flush()
    elif command == "banner":
        sys.stdout.buffer.write(" ".join(args).encode("utf-8"))
        emit({"code": "stat", "status": "ok"})
    elif command == "print":
        emit(
            {"code": "stat", "depotFile": "//depot/readme.txt", "rev": "3", "type": "text"},
            {"code": "text", "data": "hello "},
            {"code": "text", "data": "world"},
        )
    elif command == "count":
        for n in range(int(args[0]) if args else 0):
            emit({"code": "stat", "index": n})
    elif command == "stderr":
        emit({"code": "stat", "status": "ok"})
        sys.stderr.write(" ".join(args))
        sys.stderr.flush()
    elif command == "sleep":
        time.sleep(float(args[0]) if args else 5.0)
        emit({"code": "stat", "status": "awake"})
    elif command == "truncated":
        sys.stdout.buffer.write(b"{s\x04\x00\x00\x00code" + b"s\x09\x00\x00\x00sta")
        sys.stdout.buffer.flush()
    elif command == "exit":
        exit_code = int(args[0]) if args else 1
        emit({"code": "error", "data": f"exiting with {exit_code}", "severity": 3, "generic": 1})
    elif command == "set":
        sys.stdout.write("P4PORT=1666 (set)\nP4USER=alice (set)\n")
        sys.stdout.flush()
    else:
        emit({"code": "error", "data": "Unknown command.  Try 'p4 help' for info.", "severity": 3, "generic": 1})
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
