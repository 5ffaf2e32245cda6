"""Async wrapper around the ``dotnet`` command line.

cpmkeeper never resolves dependencies itself; it asks the .NET SDK.
:class:`DotnetCli` runs three commands and turns their output into
models:

- ``dotnet list [target] package --include-transitive --format json``
- ``dotnet list [target] package --vulnerable --include-transitive --format json``
- ``dotnet restore [target]``

Typical usage::

    cli = DotnetCli()
    if await cli.is_available():
        report = await cli.list_transitive_packages("/src/app")
        warnings = await cli.restore_and_get_warnings("/src/app")
"""

from __future__ import annotations

import re
import json
import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

from cpmkeeper.constants import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DOTNET_PATH,
    PROBE_TIMEOUT,
    PROJECT_FILE_SUFFIX,
)
from cpmkeeper.exceptions import DotnetCliError
from cpmkeeper.models.report import ResolvedDependencyReport, RestoreWarning
from cpmkeeper.utils.logger import get_logger

logger = get_logger("dotnet_cli")

__all__ = [
    "CommandOutput",
    "DotnetCli",
    "parse_report_output",
    "parse_restore_output",
    "project_display_name",
]

_RESTORE_WARNING = re.compile(r"([^:\r\n]*?)\s*:\s*warning\s+(NU\d+)\s*:\s*(.+)")
_PATH_SEPARATORS = re.compile(r"[\\/]")
_PROJECT_SUFFIX = re.compile(re.escape(PROJECT_FILE_SUFFIX) + r"$")

_NOT_FOUND_MESSAGE = (
    "dotnet CLI not found. Install the .NET SDK or set dotnet_path in cpmkeeper.toml."
)
_NO_JSON_MESSAGE = (
    "No JSON output from dotnet CLI. Ensure you have .NET SDK 7.0.200 or later."
)


# ---------------------------------------------------------------------------
# Pure parsing helpers
# ---------------------------------------------------------------------------


def project_display_name(path: str) -> str:
    """Return the short name used to attribute findings to a project.

    Example::

        >>> project_display_name("C:\\\\src\\\\Api\\\\Api.csproj")
        'Api'
    """
    last = _PATH_SEPARATORS.split(path)[-1]
    return _PROJECT_SUFFIX.sub("", last) or path


def parse_report_output(output: str) -> ResolvedDependencyReport:
    """Parse ``dotnet list ... --format json`` output.

    The SDK may print informational lines before the document, so parsing
    starts at the first ``{``.

    Raises:
        DotnetCliError: ``PARSE_ERROR`` when there is no ``{`` or the
            remainder is not a JSON object.
    """
    start = output.find("{")
    if start == -1:
        raise DotnetCliError(_NO_JSON_MESSAGE, DotnetCliError.PARSE_ERROR)

    try:
        data = json.loads(output[start:])
    except json.JSONDecodeError as exc:
        raise DotnetCliError(
            f"Failed to parse dotnet CLI JSON output: {exc}",
            DotnetCliError.PARSE_ERROR,
        ) from exc

    if not isinstance(data, dict):
        raise DotnetCliError(
            "Failed to parse dotnet CLI JSON output: expected an object",
            DotnetCliError.PARSE_ERROR,
        )
    return ResolvedDependencyReport.from_dict(data)


def parse_restore_output(output: str) -> List[RestoreWarning]:
    """Extract every ``<project> : warning NUxxxx: <message>`` line."""
    return [
        RestoreWarning(
            code=match.group(2),
            message=match.group(3).strip(),
            project_path=match.group(1).strip(),
        )
        for match in _RESTORE_WARNING.finditer(output)
    ]


# ---------------------------------------------------------------------------
# Process runner
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandOutput:
    stdout: str
    stderr: str
    returncode: int


class DotnetCli:
    """Runs ``dotnet`` subcommands as asyncio subprocesses.

    Args:
        dotnet_path: Executable to invoke. Defaults to ``dotnet`` on PATH.
        timeout: Per-command timeout in seconds for list/restore.
    """

    def __init__(
        self,
        dotnet_path: str = DEFAULT_DOTNET_PATH,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.dotnet_path = dotnet_path or DEFAULT_DOTNET_PATH
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public commands
    # ------------------------------------------------------------------

    async def is_available(self) -> bool:
        """Return ``True`` if ``dotnet --version`` runs successfully."""
        try:
            await self._run(["--version"], timeout=PROBE_TIMEOUT)
        except DotnetCliError as exc:
            logger.debug("dotnet availability check failed: %s", exc)
            return False
        return True

    async def list_transitive_packages(
        self,
        cwd: str,
        target: Optional[str] = None,
    ) -> ResolvedDependencyReport:
        """Return the resolved graph including transitive packages."""
        args = self._list_args(
            target, ["package", "--include-transitive", "--format", "json"]
        )
        return parse_report_output(await self._run(args, cwd=cwd))

    async def list_vulnerable_packages(
        self,
        cwd: str,
        target: Optional[str] = None,
    ) -> ResolvedDependencyReport:
        """Return resolved packages that carry known advisories."""
        args = self._list_args(
            target,
            ["package", "--vulnerable", "--include-transitive", "--format", "json"],
        )
        return parse_report_output(await self._run(args, cwd=cwd))

    async def restore_and_get_warnings(
        self,
        cwd: str,
        target: Optional[str] = None,
    ) -> List[RestoreWarning]:
        """Run ``dotnet restore`` and collect its NU warnings.

        Restore exits non-zero when it reports errors; the warnings it
        printed are still returned.
        """
        args = ["restore"]
        if target:
            args.append(target)

        result = await self._execute(args, cwd=cwd, timeout=self.timeout)
        warnings = parse_restore_output(result.stdout + "\n" + result.stderr)
        logger.debug("restore produced %d warning(s)", len(warnings))
        return warnings

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _list_args(target: Optional[str], tail: Sequence[str]) -> List[str]:
        args = ["list"]
        if target:
            args.append(target)
        args.extend(tail)
        return args

    async def _run(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a command and return stdout.

        A non-zero exit is tolerated when stdout contains JSON: ``list
        --vulnerable`` exits non-zero when it finds something.
        """
        result = await self._execute(
            args, cwd=cwd, timeout=self.timeout if timeout is None else timeout
        )
        if result.returncode == 0 or "{" in result.stdout:
            return result.stdout

        reason = result.stderr.strip() or f"exit code {result.returncode}"
        raise DotnetCliError(
            f"dotnet command failed: {reason}",
            DotnetCliError.COMMAND_FAILED,
            command=self._format_command(args),
        )

    async def _execute(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[str],
        timeout: float,
    ) -> CommandOutput:
        command = self._format_command(args)
        logger.debug("Running: %s (cwd=%s)", command, cwd)

        try:
            proc = await asyncio.create_subprocess_exec(
                self.dotnet_path,
                *args,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise DotnetCliError(
                _NOT_FOUND_MESSAGE, DotnetCliError.NOT_FOUND, command=command
            ) from exc
        except OSError as exc:
            raise DotnetCliError(
                f"dotnet command failed: {exc}",
                DotnetCliError.COMMAND_FAILED,
                command=command,
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise DotnetCliError(
                f"dotnet command timed out after {timeout:g}s",
                DotnetCliError.TIMEOUT,
                command=command,
            ) from exc

        return CommandOutput(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            returncode=proc.returncode if proc.returncode is not None else -1,
        )

    def _format_command(self, args: Sequence[str]) -> str:
        return " ".join([self.dotnet_path, *args])
