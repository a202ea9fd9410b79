"""
Candidate Catalog - snapshot of selectable models across backends

Discovery itself lives outside switchyard; anything that implements
CandidateCatalog can feed the router. CandidateRegistry is the in-memory
implementation used for embedding and tests.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_RAM_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(GB|MB|G|M)?\b", re.IGNORECASE)

# RAM assumed when a model's requirement field carries no number
DEFAULT_RAM_GB = 8.0


class Origin(str, Enum):
    """Backend class a candidate runs under"""

    OLLAMA = "ollama"            # local daemon
    HUGGINGFACE = "huggingface"  # downloadable weight file
    CLOUD = "cloud"              # remote API

    def __str__(self) -> str:
        return self.value


class TaskCategory(str, Enum):
    """Task categories candidates are scored against"""

    CODING = "coding"
    REASONING = "reasoning"
    GENERAL = "general"
    CREATIVE = "creative"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CandidateModel:
    """One selectable model as reported by the catalog"""

    name: str
    origin: Origin
    trust_score: float = 5.0
    parameters: str | None = None  # e.g. "7B", "350M"
    ram_requirement: str | None = None  # free text, e.g. "4GB"
    task_suitability: dict[str, float] = field(default_factory=dict)
    available: bool = True  # False = needs fetching before it can run

    download_size: int | None = None  # bytes
    context_size: int | None = None
    description: str | None = None

    @property
    def parameter_count(self) -> float | None:
        """Parameter scale in billions, or None when unknown"""
        return parse_parameters(self.parameters) if self.parameters else None

    @property
    def ram_gb(self) -> float:
        return parse_ram_requirement(self.ram_requirement)

    def suitability(self, task: "TaskCategory | str") -> float:
        return self.task_suitability.get(str(task), 0.0)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CandidateModel":
        data = dict(data)
        origin = Origin(data.pop("origin", data.pop("backend", "ollama")))
        suitability = {str(k): float(v) for k, v in (data.pop("task_suitability", None) or {}).items()}
        known = {f.name for f in fields(cls)}
        extra = sorted(k for k in data if k not in known)
        if extra:
            logger.debug("Ignoring unknown catalog fields for %s: %s", data.get("name"), extra)
        kwargs = {k: v for k, v in data.items() if k in known}
        return cls(origin=origin, task_suitability=suitability, **kwargs)


def parse_parameters(params: str) -> float:
    """
    Parse a parameter-scale label into billions.

    "7B" -> 7.0, "350M" -> 0.35, "13" -> 13.0; 0.0 when no number is present.
    """
    match = _NUMBER_RE.search(params)
    if not match:
        return 0.0
    num = float(match.group(1))
    upper = params.upper()
    if "B" in upper:
        return num
    if "M" in upper:
        return num / 1000
    return num


def parse_ram_requirement(ram: str | None) -> float:
    """
    Parse a free-text RAM field into GB.

    "4GB" -> 4.0, "512MB" -> 0.5, "about 5.5 GB" -> 5.5; a bare number is GB.
    """
    if not ram:
        return DEFAULT_RAM_GB
    match = _RAM_RE.search(ram)
    if not match:
        return DEFAULT_RAM_GB
    value = float(match.group(1))
    unit = (match.group(2) or "GB").upper()
    if unit.startswith("M"):
        return value / 1024
    return value


class CandidateCatalog(ABC):
    """Source of candidate snapshots consumed by the routing engine"""

    @abstractmethod
    async def list_candidates(self, force_refresh: bool = False) -> list[CandidateModel]:
        """Return every known candidate; each call is a fresh snapshot"""

    @abstractmethod
    async def group_by_origin(self) -> dict[Origin, list[CandidateModel]]:
        """Return candidates grouped by their origin"""


class CandidateRegistry(CandidateCatalog):
    """In-memory catalog of candidates, preserving registration order"""

    def __init__(self, candidates: list[CandidateModel] | None = None) -> None:
        self.candidates: dict[str, CandidateModel] = {}
        for candidate in candidates or []:
            self.register(candidate)

    @classmethod
    def from_file(cls, path: str | Path) -> "CandidateRegistry":
        """Load a catalog from a JSON or YAML list of candidate mappings."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")
        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                entries = yaml.safe_load(f) or []
            else:
                entries = json.load(f)
        registry = cls([CandidateModel.from_dict(e) for e in entries])
        logger.info("Loaded %d candidate(s) from %s", len(registry.candidates), path)
        return registry

    def register(self, candidate: CandidateModel) -> None:
        """Register or replace a candidate"""
        self.candidates[candidate.name] = candidate

    def unregister(self, name: str) -> None:
        self.candidates.pop(name, None)

    def get(self, name: str) -> CandidateModel | None:
        return self.candidates.get(name)

    async def list_candidates(self, force_refresh: bool = False) -> list[CandidateModel]:
        return list(self.candidates.values())

    async def group_by_origin(self) -> dict[Origin, list[CandidateModel]]:
        groups: dict[Origin, list[CandidateModel]] = {}
        for candidate in self.candidates.values():
            groups.setdefault(candidate.origin, []).append(candidate)
        return groups
