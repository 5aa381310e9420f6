"""
Quality Oracle - scores a deployed build

ScriptQualityOracle shells out to a browser test script which prints a JSON
report ({score, defects, checks}) on stdout. The script exits non-zero for low
scores, so stdout is parsed regardless of the exit code.
"""
import json
import logging
import shlex
import subprocess
from abc import ABC, abstractmethod

from schemas.quality import QualityReport

logger = logging.getLogger(__name__)


class QualityOracle(ABC):
    @abstractmethod
    def evaluate(self, url: str) -> QualityReport:
        ...


class ScriptQualityOracle(QualityOracle):
    """
    Args:
        command: Test command line; the URL is appended as last argument
        timeout: Seconds before the test run is abandoned
    """

    def __init__(self, command: str, timeout: int = 120):
        self.command = shlex.split(command)
        self.timeout = timeout

    def evaluate(self, url: str) -> QualityReport:
        try:
            result = subprocess.run(
                [*self.command, url],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return QualityReport.runner_error(f"timed out after {self.timeout}s")
        except OSError as e:
            return QualityReport.runner_error(str(e))

        try:
            return QualityReport.model_validate(json.loads(result.stdout))
        except ValueError as e:
            detail = (result.stderr or "").strip()[-300:] or str(e)
            logger.warning(f"[QualityOracle] Unparseable report for {url} (exit {result.returncode}): {detail}")
            return QualityReport.runner_error(f"exit code {result.returncode}: {detail}")
