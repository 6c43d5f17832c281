"""Runs the repository's local light CI script from the .heat directory."""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Tuple

logger = logging.getLogger(__name__)

HEAT_DIRECTORY = ".heat"

# Checked in order; the first script that exists is run.
SCRIPT_INTERPRETERS = (
    ("light_ci.sh", ("bash",)),
    ("light_ci.ps1", ("pwsh", "-NoProfile", "-NonInteractive", "-File")),
)


class LightCiRunner:
    def __init__(self, working_directory: str | Path, timeout_seconds: int = 1800) -> None:
        self.working_directory = Path(working_directory)
        self.timeout_seconds = timeout_seconds

    def find_script(self) -> Tuple[Path | None, Tuple[str, ...]]:
        for name, interpreter in SCRIPT_INTERPRETERS:
            candidate = self.working_directory / HEAT_DIRECTORY / name
            if candidate.is_file():
                return candidate, interpreter
        return None, ()

    def run(self) -> Tuple[bool, str]:
        script, interpreter = self.find_script()
        if script is None:
            names = ", ".join(f"{HEAT_DIRECTORY}/{name}" for name, _ in SCRIPT_INTERPRETERS)
            logger.info("No light CI script present; looked for %s", names)
            return True, f"No light CI script present in the working directory (looked for {names})."

        start = time.time()
        logger.info("Running light CI: %s", script)
        try:
            result = subprocess.run(
                [*interpreter, str(script)],
                cwd=self.working_directory,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            logger.error("Light CI timed out after %ss", self.timeout_seconds)
            return False, f"Light CI timed out after {self.timeout_seconds} seconds."
        except OSError as exc:
            logger.error("Light CI could not start %s: %s", interpreter[0], exc)
            return False, f"Could not start {interpreter[0]}: {exc}"

        output = (result.stdout or "") + (result.stderr or "")
        logger.info(
            "Light CI finished with exit code %s in %sms",
            result.returncode,
            int((time.time() - start) * 1000),
        )
        return result.returncode == 0, output
