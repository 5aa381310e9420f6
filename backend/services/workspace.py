"""
Job workspaces - one directory per job shared by all of its execution units
"""
import logging
import shutil
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)


class JobWorkspace:
    """
    Directory layout:
        <root>/job-<id>/          working dir of every phase
        <root>/job-<id>/dist/     build output that gets deployed
        <root>/job-<id>/.logs/    captured output of execution units
    """

    def __init__(self, root: Path, job_id: int):
        self.root = Path(root)
        self.job_id = job_id
        self.path = self.root / f"job-{job_id}"

    @property
    def dist_dir(self) -> Path:
        return self.path / "dist"

    @property
    def logs_dir(self) -> Path:
        return self.path / ".logs"

    def ensure(self) -> Path:
        """Create the workspace, writable by the unprivileged worker user"""
        self.path.mkdir(parents=True, exist_ok=True)
        try:
            self.path.chmod(0o777)
        except OSError as e:
            logger.debug(f"[Workspace] chmod failed for {self.path}: {e}")
        return self.path

    def copy_artifacts_from(self, source: "JobWorkspace", names: Iterable[str]) -> List[str]:
        """
        Copy named files/directories from another job's workspace

        Missing names are skipped.

        Returns:
            Names that were copied
        """
        self.ensure()
        copied = []
        for name in names:
            src = source.path / name
            dest = self.path / name
            if src.is_dir():
                shutil.copytree(src, dest, dirs_exist_ok=True)
            elif src.is_file():
                shutil.copy2(src, dest)
            else:
                continue
            copied.append(name)
        return copied
