"""
Blocking subprocess runner shared by the terraform and kubectl wrappers.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

# Return code used when the binary could not be started at all.
NOT_STARTED = 127


@dataclass
class CommandResult:
    command: List[str]
    returncode: int
    output: str = ""
    stderr: str = ""  # only filled when stderr was kept apart from output

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def combined(self) -> str:
        return "\n".join(part for part in (self.output, self.stderr) if part)

    def tail(self, lines: int = 40) -> List[str]:
        output_lines = self.combined.splitlines()
        return output_lines[-lines:]


def run_command(
    command: List[str],
    cwd: Optional[Path] = None,
    log_file: Optional[Path] = None,
    on_line: Optional[Callable[[str], None]] = None,
    merge_stderr: bool = True,
) -> CommandResult:
    """
    Run a command to completion.

    With ``merge_stderr`` the combined output is streamed line by line;
    without it stdout and stderr are captured separately, so stdout can
    be parsed as a value.

    Args:
        command: Argument vector
        cwd: Working directory
        log_file: File the output is appended to, under a header line
        on_line: Callback invoked with each non-empty output line (merged mode only)
        merge_stderr: Fold stderr into ``output``

    Returns:
        CommandResult with the exit code and captured output
    """
    logger.debug("Running: %s", " ".join(command))
    if not merge_stderr:
        return _run_captured(command, cwd, log_file)

    try:
        process = subprocess.Popen(
            command,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except OSError as e:
        logger.error("Failed to start %s: %s", command[0], e)
        return CommandResult(command, NOT_STARTED, str(e))

    output_lines = []
    log = open(log_file, "a") if log_file else None
    try:
        if log:
            log.write(f"=== {' '.join(command)} ===\n")

        for line in process.stdout:
            line = line.rstrip()
            output_lines.append(line)
            if log:
                log.write(line + "\n")
                log.flush()
            if on_line and line.strip():
                on_line(line)

        process.wait()
    finally:
        if log:
            log.close()

    return CommandResult(command, process.returncode, "\n".join(output_lines))


def _run_captured(command: List[str], cwd: Optional[Path], log_file: Optional[Path]) -> CommandResult:
    try:
        completed = subprocess.run(command, cwd=cwd, capture_output=True, text=True)
    except OSError as e:
        logger.error("Failed to start %s: %s", command[0], e)
        return CommandResult(command, NOT_STARTED, stderr=str(e))

    if log_file:
        with open(log_file, "a") as log:
            log.write(f"=== {' '.join(command)} ===\n")
            log.write(completed.stdout)
            log.write(completed.stderr)

    return CommandResult(command, completed.returncode, completed.stdout.rstrip("\n"), completed.stderr.rstrip("\n"))
