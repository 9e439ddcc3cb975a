"""p4 client: command orchestration around the protocol runner.

Usage:
    from p4bridge import P4

    p4 = P4({"P4PORT": "ssl:perforce:1666", "P4USER": "alice"})
    result = await p4.cmd("info")
    print(result.info)

    spec = p4.cmd_sync("change -o")
    p4.cmd_sync("change -i", spec.stat[0])

Every call spawns one process:

    <bin_path>p4 -G [-c P4CLIENT] [-p P4PORT] [-u P4USER] <command tokens>

Raw calls omit ``-G`` and return the literal stdout/stderr text.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .config import get_config, parse_timeout_ms
from .formatter import P4Result, RawResult, format_result
from .marshal import MarshalInput
from .runtime import (
    ProcessRunner,
    ProtocolResult,
    apply_command_quirks,
    run_protocol,
    run_protocol_sync,
    run_raw,
    run_raw_sync,
)
from .utils import split_command

__all__ = ["P4", "P4Options", "TAGGED_FLAG"]

logger = logging.getLogger(__name__)

TAGGED_FLAG = "-G"

# Client environment variables forced onto the command line, so values from
# a P4CONFIG file cannot override them
_GLOBAL_OPTION_FLAGS = (
    ("P4CLIENT", "-c"),
    ("P4PORT", "-p"),
    ("P4USER", "-u"),
)


@dataclass
class P4Options:
    """Per-client execution options.

    Attributes:
        bin_path: Prefix prepended to the executable name
        executable: Executable name
        timeout_ms: Deadline in milliseconds; None reads P4API_TIMEOUT from
            the client environment, 0 disables the deadline
        encoding: Text encoding of the marshal stream
    """

    bin_path: str = ""
    executable: str = "p4"
    timeout_ms: float | None = None
    encoding: str = "utf-8"


class P4:
    """Client for the p4 command-line executable.

    Attributes:
        cwd: Working directory for every command (fixed at construction)
        env: Environment passed to the child process
        options: Execution options
        debug: Log every formatted result
        global_options: Flags derived from P4CLIENT/P4PORT/P4USER
    """

    def __init__(
        self,
        p4set: Mapping[str, str] | None = None,
        debug: bool | None = None,
        *,
        cwd: Path | str | None = None,
        options: P4Options | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        """Create a client.

        Args:
            p4set: Environment overrides (P4PORT, P4USER, P4CLIENT, ...)
            debug: Log results at DEBUG (default from P4BRIDGE_DEBUG)
            cwd: Working directory (default: current directory)
            options: Execution options (default bin_path from P4BRIDGE_BIN_PATH)
            runner: Process runner to use
        """
        config = get_config()
        self.debug = config.debug if debug is None else debug
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.options = options or P4Options(bin_path=config.bin_path)
        self.runner = runner or ProcessRunner()

        self.env: dict[str, str] = dict(os.environ)
        self.env["PWD"] = str(self.cwd)
        self.env.update({k: str(v) for k, v in (p4set or {}).items()})

        self.global_options: list[str] = []
        self._set_global_options()

    # =========================================================================
    # Environment and options
    # =========================================================================

    def set_env(self, env: Mapping[str, Any]) -> None:
        """Merge variables into the client environment."""
        self.env.update({k: str(v) for k, v in env.items()})
        self._set_global_options()

    def get_env(self, name: str) -> str | None:
        return self.env.get(name)

    def set_opts(self, opts: Mapping[str, Any]) -> "P4":
        """Replace execution options; ``cwd`` cannot be changed this way.

        ``env`` replaces the whole environment. Supports chaining.

        Raises:
            ValueError: Unknown option name
        """
        for key, value in opts.items():
            if key == "cwd":
                logger.debug("Ignoring cwd in set_opts")
                continue
            if key == "env":
                self.env = {k: str(v) for k, v in value.items()}
            else:
                self._set_option(key, value)
        self._set_global_options()
        return self

    def add_opts(self, opts: Mapping[str, Any]) -> "P4":
        """Like :meth:`set_opts`, but ``env`` is merged instead of replaced."""
        for key, value in opts.items():
            if key == "cwd":
                logger.debug("Ignoring cwd in add_opts")
                continue
            if key == "env":
                self.env.update({k: str(v) for k, v in value.items()})
            else:
                self._set_option(key, value)
        self._set_global_options()
        return self

    def _set_option(self, key: str, value: Any) -> None:
        names = {f.name for f in fields(P4Options)}
        if key not in names:
            raise ValueError(f"unknown option: {key}")
        setattr(self.options, key, value)

    def _set_global_options(self) -> None:
        self.global_options = []
        for var, flag in _GLOBAL_OPTION_FLAGS:
            value = self.env.get(var)
            if value:
                self.global_options += [flag, value]

    @property
    def executable(self) -> str:
        return self.options.bin_path + self.options.executable

    @property
    def timeout(self) -> float | None:
        """Deadline in seconds, or None when disabled."""
        if self.options.timeout_ms is not None:
            timeout_ms = parse_timeout_ms(self.options.timeout_ms)
        else:
            timeout_ms = parse_timeout_ms(self.env.get("P4API_TIMEOUT"))
        return timeout_ms / 1000.0 if timeout_ms > 0 else None

    def build_argv(self, command: str, *, tagged: bool = True) -> list[str]:
        """Build the full argument vector for a command string."""
        argv = [self.executable]
        if tagged:
            argv.append(TAGGED_FLAG)
        return argv + self.global_options + split_command(command)

    # =========================================================================
    # Commands
    # =========================================================================

    async def cmd(self, command: str, data_in: MarshalInput | None = None) -> P4Result:
        """Run a tagged command.

        Args:
            command: Command string, e.g. ``'files //depot/...'``
            data_in: Mapping marshalled to stdin, or str/bytes written as-is

        Raises:
            CommandSyntaxError: The command string could not be split
            SpawnError: p4 could not be started
            ProcessError: A pipe failed while running
            P4TimeoutError: The deadline expired
            MalformedStreamError: The output was not a valid marshal stream
        """
        argv = self.build_argv(command)
        logger.info(f"--> p4 {command}")
        protocol = await run_protocol(
            argv,
            data_in,
            cwd=self.cwd,
            env=self.env,
            timeout=self.timeout,
            encoding=self.options.encoding,
            runner=self.runner,
        )
        return self._finish(command, protocol)

    def cmd_sync(self, command: str, data_in: MarshalInput | None = None) -> P4Result:
        """Blocking variant of :meth:`cmd`."""
        argv = self.build_argv(command)
        logger.info(f"--> p4 {command} (sync)")
        protocol = run_protocol_sync(
            argv,
            data_in,
            cwd=self.cwd,
            env=self.env,
            timeout=self.timeout,
            encoding=self.options.encoding,
            runner=self.runner,
        )
        return self._finish(command, protocol)

    async def raw_cmd(self, command: str, data_in: str | bytes | None = None) -> RawResult:
        """Run a command without ``-G``; stdin is written as-is."""
        argv = self.build_argv(command, tagged=False)
        logger.info(f"--> p4 {command} (raw)")
        output = await run_raw(
            argv,
            data_in,
            cwd=self.cwd,
            env=self.env,
            timeout=self.timeout,
            encoding=self.options.encoding,
            runner=self.runner,
        )
        result = RawResult(text=output.text, error=output.error, returncode=output.returncode)
        self._log_result(command, result.to_dict())
        return result

    def raw_cmd_sync(self, command: str, data_in: str | bytes | None = None) -> RawResult:
        """Blocking variant of :meth:`raw_cmd`."""
        argv = self.build_argv(command, tagged=False)
        logger.info(f"--> p4 {command} (raw, sync)")
        output = run_raw_sync(
            argv,
            data_in,
            cwd=self.cwd,
            env=self.env,
            timeout=self.timeout,
            encoding=self.options.encoding,
            runner=self.runner,
        )
        result = RawResult(text=output.text, error=output.error, returncode=output.returncode)
        self._log_result(command, result.to_dict())
        return result

    def _finish(self, command: str, protocol: ProtocolResult) -> P4Result:
        records = apply_command_quirks(command, protocol.records)
        result = format_result(records, protocol.stderr, protocol.returncode)
        self._log_result(command, result.to_dict())
        return result

    def _log_result(self, command: str, payload: dict[str, Any]) -> None:
        if self.debug:
            logger.debug(f"-P4 {command} {json.dumps(payload, ensure_ascii=False, default=str)}")
