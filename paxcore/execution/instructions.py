# paxcore/execution/instructions.py
"""
Install instructions: the restricted command grammar run on the host after
the plugin succeeds.

    "mkdir -p bin; cp build/tool bin/tool"

Statements are separated by a literal ';' and split into argv on runs of
whitespace. There is no quoting, escaping, globbing, variable expansion or
redirection, and no shell is involved: an argument can never contain a space
or a ';'. Anything richer belongs in the plugin.
"""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from paxcore.core.cancellation import CancellationToken, checkpoint
from paxcore.core.errors import HostCommandError, MalformedInstallInstruction

logger = logging.getLogger(__name__)

__all__ = [
    "Statement",
    "CommandResult",
    "CommandRunner",
    "parseInstallInstructions",
    "runStatements",
]

STATEMENT_SEPARATOR = ";"



@dataclass(frozen=True)
class Statement:
    index: int
    text: str
    argv: tuple[str, ...]

    def __str__(self) -> str:
        return " ".join(self.argv)



@dataclass(frozen=True)
class CommandResult:
    statement: Statement
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0



CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]



def parseInstallInstructions(text: str | None) -> tuple[Statement, ...]:
    """
    Split an install string into statements.

    A blank string means nothing to run. Otherwise every ';'-separated piece
    must hold at least one token, so "a;;b", "a;" and ";a" are rejected as a
    whole before any statement could run.
    """
    if text is None or not text.strip():
        return ()

    statements: list[Statement] = []
    for index, piece in enumerate(text.split(STATEMENT_SEPARATOR)):
        argv = tuple(piece.split())
        if not argv:
            raise MalformedInstallInstruction(piece, index)
        statements.append(Statement(index=index, text=piece.strip(), argv=argv))
    return tuple(statements)



def _runSubprocess(argv: Sequence[str], *, cwd: Path, timeout: float | None) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        list(argv),
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        timeout=timeout,
        check=False,
    )



def runStatements(
    statements: Sequence[Statement],
    cwd: Path,
    *,
    cancel: CancellationToken | None = None,
    runner: CommandRunner | None = None,
    timeout: float | None = None,
    onResult: Callable[[CommandResult], None] | None = None,
) -> tuple[CommandResult, ...]:
    """
    Run statements one at a time, in order, with `cwd` as working directory.

    Stops at the first statement that cannot be spawned, times out or exits
    non-zero, raising HostCommandError. `onResult` sees every finished
    command, the failing one included.
    """
    run = runner or _runSubprocess
    results: list[CommandResult] = []

    for statement in statements:
        checkpoint(cancel, f"install:{statement}")
        logger.info("CMD %s", statement)
        try:
            proc = run(statement.argv, cwd=cwd, timeout=timeout)
        except subprocess.TimeoutExpired as err:
            logger.warning("Install statement %r timed out after %ss", statement.text, timeout)
            raise HostCommandError(statement.text, f"timed out after {timeout}s") from err
        except OSError as err:
            logger.warning("Install statement %r could not be spawned: %s", statement.text, err)
            raise HostCommandError(statement.text, err) from err

        result = CommandResult(
            statement=statement,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        results.append(result)
        if onResult is not None:
            onResult(result)
        if result.stdout:
            logger.debug("STDOUT %s", result.stdout.strip())
        if result.stderr:
            logger.debug("STDERR %s", result.stderr.strip())

        if not result.succeeded:
            logger.warning("Install statement %r exited with %d", statement.text, result.returncode)
            raise HostCommandError(
                statement.text,
                f"exited with status {result.returncode}: {result.stderr.strip()}",
                returncode=result.returncode,
            )

    return tuple(results)
