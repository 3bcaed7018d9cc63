from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from akari._src.constants import REGISTRY_VERSION


class Environment(BaseModel):
    """A named working directory tracked by akari"""
    name: str
    working_directory: Path
    remote_url: Optional[str] = None
    created_at: datetime


class EnvironmentRecord(BaseModel):
    """Registry entry for an environment, keyed by name in `Registry`"""
    working_directory: Path
    remote_url: Optional[str] = None
    created_at: datetime

    def to_environment(self, name: str) -> Environment:
        return Environment(name=name, **self.model_dump())


class Registry(BaseModel):
    """On-disk schema of the environment registry"""
    version: int = REGISTRY_VERSION
    environments: Dict[str, EnvironmentRecord] = Field(default={})


class Snapshot(BaseModel):
    """A tagged, immutable point in the history of an environment

    `created_at` is informational; ordering between snapshots is always
    derived from commit ancestry.
    """
    tag: str
    history_reference: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class PullResult(BaseModel):
    new_tags: List[str] = Field(default=[])
    previous_head: Optional[str] = None
    head: Optional[str] = None

    @property
    def fast_forwarded(self) -> bool:
        return self.previous_head != self.head

    @property
    def changed(self) -> bool:
        return bool(self.new_tags) or self.fast_forwarded
