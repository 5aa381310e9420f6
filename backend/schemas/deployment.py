"""
Deployment-related Pydantic schemas
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel


class DeploymentResult(BaseModel):
    """Where a build was published"""
    gameId: int
    url: str
    deployPath: str


class DeployedGame(BaseModel):
    """Entry of the public game listing"""
    gameId: int
    name: str
    title: Optional[str] = None
    url: str
    deployedAt: Optional[datetime] = None


class GameListResponse(BaseModel):
    games: List[DeployedGame]


class RemoveGameResponse(BaseModel):
    gameId: int
    removed: bool
