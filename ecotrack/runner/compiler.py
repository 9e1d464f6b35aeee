"""Compiler invocation: version query, build and migrate."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ecotrack.models import SemVer, VersionParseError
from ecotrack.utils.logging import get_logger

logger = get_logger("runner.compiler")


class CompilerError(Exception):
    """Raised when the compiler binary cannot be run or reports no usable version."""

    pass


@dataclass
class CommandOutput:
    """Output of one compiler invocation."""

    success: bool
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def logs(self) -> str:
        return self.stdout + self.stderr


def pin_arg(version: str) -> str:
    """Toolchain selector argument placed before the subcommand (``+0.13``)."""
    return f"+{version.lstrip('+')}"


def migrate_pin(minor: int) -> str:
    """Selector for the given minor of the unstable line."""
    return pin_arg(f"0.{minor}")


class CompilerRunner:
    """
    Runs the tracked compiler.

    Every invocation may be pinned to a toolchain version by a leading
    ``+<version>`` argument, e.g. ``veryl +0.12 build``.
    """

    def __init__(self, binary: str | Path, timeout: Optional[int] = None) -> None:
        """
        Initialize the runner.

        Args:
            binary: Compiler executable (name on PATH or explicit path)
            timeout: Seconds before an invocation is killed; None waits indefinitely
        """
        self.binary = str(binary)
        self.timeout = timeout

    async def version(self, pin: Optional[str] = None) -> SemVer:
        """
        Query the compiler's semantic version.

        Raises:
            CompilerError: If the binary fails or prints no parseable version
        """
        args = [pin] if pin else []
        output = await self._run([*args, "--version"], cwd=None)
        if not output.success:
            raise CompilerError(
                f"{self.binary} --version failed: {output.stderr.strip() or output.returncode}"
            )

        # "veryl 0.13.1" -> "0.13.1"
        words = output.stdout.strip().split()
        if not words:
            raise CompilerError(f"{self.binary} --version printed nothing")
        try:
            version = SemVer.parse(words[-1].lstrip("v"))
        except VersionParseError as e:
            raise CompilerError(str(e)) from e

        logger.debug("compiler_version", binary=self.binary, pin=pin, version=str(version))
        return version

    async def build(
        self,
        root: Path,
        pin: Optional[str] = None,
        check: bool = False,
    ) -> CommandOutput:
        """
        Build one root.

        Args:
            root: Directory containing the manifest
            pin: Optional toolchain selector
            check: Verify generated output matches what is on disk
        """
        args = [pin] if pin else []
        args.append("build")
        if check:
            args.append("--check")

        output = await self._run(args, cwd=root)
        logger.debug(
            "compiler_build",
            root=str(root),
            pin=pin,
            check=check,
            success=output.success,
        )
        return output

    async def migrate(self, root: Path, pin: str) -> CommandOutput:
        """Rewrite sources in place for the pinned version."""
        output = await self._run([pin, "migrate"], cwd=root)
        logger.debug("compiler_migrate", root=str(root), pin=pin, success=output.success)
        return output

    async def _run(self, args: Sequence[str], cwd: Optional[Path]) -> CommandOutput:
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary, *args,
                cwd=str(cwd) if cwd is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CompilerError(f"Cannot run {self.binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("compiler_timeout", args=list(args), timeout=self.timeout)
            return CommandOutput(success=False, timed_out=True)

        return CommandOutput(
            success=process.returncode == 0,
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
