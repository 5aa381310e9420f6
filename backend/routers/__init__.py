"""
Routers package
FastAPI route handlers organized by domain
"""
from . import jobs

__all__ = [
    "jobs",
]
