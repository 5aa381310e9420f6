"""
Deployer - publishes a job's build output at a reachable URL

Contract used by the pipeline:
- deploy(job_id, display_name, source_dir) -> DeploymentResult
- list_deployed() -> [DeployedGame]
- remove(job_id) -> RemoveGameResponse
- publish_listing(games)

StaticSiteDeployer copies the build into DEPLOY_DIR/game-<id>/html, which the
front proxy serves as https://game-<id>.<domain>.
"""
import json
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from database import utcnow
from schemas.deployment import DeploymentResult, DeployedGame, RemoveGameResponse
from services.errors import DeploymentError

logger = logging.getLogger(__name__)

GAME_DIR_PREFIX = "game-"
META_FILE = "meta.json"


class Deployer(ABC):
    """Collaborator that owns published builds and the public listing"""

    @abstractmethod
    def deploy(self, job_id: int, display_name: str, source_dir: Path) -> DeploymentResult:
        ...

    @abstractmethod
    def list_deployed(self) -> List[DeployedGame]:
        ...

    @abstractmethod
    def remove(self, job_id: int) -> RemoveGameResponse:
        ...

    @abstractmethod
    def publish_listing(self, games: List[DeployedGame]) -> None:
        ...

    def refresh_listing(self) -> List[DeployedGame]:
        """Rebuild the public listing from what is currently deployed"""
        games = self.list_deployed()
        self.publish_listing(games)
        return games


class StaticSiteDeployer(Deployer):
    """
    Args:
        deploy_dir: Directory holding one sub-directory per game
        domain: Base domain for game sub-domains
        listing_path: Where the gallery JSON is written
    """

    def __init__(self, deploy_dir: Path, domain: str, listing_path: Path):
        self.deploy_dir = Path(deploy_dir)
        self.domain = domain
        self.listing_path = Path(listing_path)

    def _name(self, job_id: int) -> str:
        return f"{GAME_DIR_PREFIX}{job_id}"

    def game_url(self, job_id: int) -> str:
        return f"https://{self._name(job_id)}.{self.domain}"

    def deploy(self, job_id: int, display_name: str, source_dir: Path) -> DeploymentResult:
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            raise DeploymentError(f"Build output not found: {source_dir}")

        deploy_path = self.deploy_dir / self._name(job_id)
        html_path = deploy_path / "html"
        try:
            # Replace the previous build wholesale so deleted files disappear
            if html_path.exists():
                shutil.rmtree(html_path)
            html_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source_dir, html_path)

            url = self.game_url(job_id)
            meta = {
                "gameId": job_id,
                "title": display_name,
                "url": url,
                "deployedAt": utcnow().isoformat(),
            }
            (deploy_path / META_FILE).write_text(json.dumps(meta, indent=2), encoding="utf-8")
        except OSError as e:
            raise DeploymentError(f"Deploy of job {job_id} failed: {e}") from e

        logger.info(f"[Deployer] Deployed job {job_id} to {url}")
        return DeploymentResult(gameId=job_id, url=url, deployPath=str(deploy_path))

    def list_deployed(self) -> List[DeployedGame]:
        if not self.deploy_dir.exists():
            return []

        games = []
        for entry in sorted(self.deploy_dir.iterdir()):
            if not entry.is_dir() or not entry.name.startswith(GAME_DIR_PREFIX):
                continue
            try:
                job_id = int(entry.name[len(GAME_DIR_PREFIX):])
            except ValueError:
                continue

            meta = {}
            meta_path = entry / META_FILE
            if meta_path.exists():
                try:
                    meta = json.loads(meta_path.read_text(encoding="utf-8"))
                except (OSError, ValueError) as e:
                    logger.warning(f"[Deployer] Unreadable {meta_path}: {e}")

            games.append(DeployedGame(
                gameId=job_id,
                name=entry.name,
                title=meta.get("title"),
                url=meta.get("url") or self.game_url(job_id),
                deployedAt=meta.get("deployedAt"),
            ))
        games.sort(key=lambda g: g.gameId)
        return games

    def remove(self, job_id: int) -> RemoveGameResponse:
        shutil.rmtree(self.deploy_dir / self._name(job_id), ignore_errors=True)
        logger.info(f"[Deployer] Removed job {job_id}")
        return RemoveGameResponse(gameId=job_id, removed=True)

    def publish_listing(self, games: List[DeployedGame]) -> None:
        self.listing_path.parent.mkdir(parents=True, exist_ok=True)
        payload = [g.model_dump(mode="json") for g in games]
        self.listing_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
