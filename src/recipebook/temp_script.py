"""
Temporary script file management for shebang recipes.

A recipe whose body starts with ``#!`` is written to a temporary file and
executed as a single program instead of line by line through the shell.
"""

import os
import platform
import shlex
import stat
import tempfile
import types
from pathlib import Path

from recipebook.logging import Logger

_IS_WINDOWS = platform.system() == "Windows"


class TempScript:
    """
    Context manager for temporary script files.

    Usage:
        with TempScript(logger=my_logger, script="#!/usr/bin/env python3\\nprint(1)\\n") as cmd:
            run_sequential(runner, cmd)
        # Script is automatically cleaned up after the with block
    """

    def __init__(self, logger: Logger, script: str, recipe_name: str = "recipe"):
        """
        Initialize temp script manager.

        Args:
            logger: Logger for debug logging
            script: Complete script text, starting with a shebang line
            recipe_name: Used in the temporary file name
        """
        self.script = script
        self.recipe_name = recipe_name
        self.logger = logger
        self.script_path: Path | None = None

    def interpreter(self) -> list[str]:
        """The shebang line split into program and arguments."""
        first_line = self.script.splitlines()[0] if self.script else ""
        if not first_line.startswith("#!"):
            return []
        return shlex.split(first_line[2:].strip())

    def __enter__(self) -> list[str]:
        """
        Create the temp script and return the command that runs it.

        On Unix/macOS the script is made executable and run directly so the
        kernel honours the shebang. On Windows the shebang interpreter is
        invoked explicitly with the script path.
        """
        with tempfile.NamedTemporaryFile(
            mode="w",
            prefix=f"{self.recipe_name}-",
            delete=False,
            encoding="utf-8",
        ) as script_file:
            script_file.write(self.script)
            script_file.flush()
            self.script_path = Path(script_file.name)

        self.logger.debug(f"Created temp script at: {self.script_path}")

        if _IS_WINDOWS:
            return self.interpreter() + [str(self.script_path)]

        os.chmod(self.script_path, os.stat(self.script_path).st_mode | stat.S_IEXEC)
        return [str(self.script_path)]

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """
        Delete the temporary script file.

        Cleanup failures are logged, not raised, so they never mask an
        exception from the body of the with block.
        """
        if self.script_path:
            try:
                os.unlink(self.script_path)
                self.logger.debug(f"Cleaned up temp script: {self.script_path}")
            except OSError as e:
                self.logger.warn(
                    f"Failed to clean up temp script {self.script_path}: {e}"
                )
