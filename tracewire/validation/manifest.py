"""Workflow manifests: declarative lists of expected steps."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import Field

from ..contracts import WireModel

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_DIR = Path(__file__).with_name("manifests")
MANIFEST_SUFFIXES = (".json", ".yaml", ".yml")

_MANIFEST_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class StepValidation(WireModel):
    """Rules checked against a step's resolved output."""

    required: Optional[List[str]] = None
    min_count: Optional[Dict[str, int]] = None


class ManifestStep(WireModel):
    id: str
    name: str
    description: str = ""
    output_key: Optional[str] = None
    validation: Optional[StepValidation] = None


class WorkflowManifest(WireModel):
    """Ordered list of steps a workflow run is expected to produce."""

    id: str
    name: str = ""
    version: str
    description: str = ""
    steps: List[ManifestStep] = Field(default_factory=list)


class ManifestLoader:
    """Reads manifests named ``<manifest_id>.json|.yaml`` from a directory."""

    def __init__(self, directory: Optional[str | Path] = None) -> None:
        self.directory = Path(directory) if directory else DEFAULT_MANIFEST_DIR

    def _path_for(self, manifest_id: str) -> Optional[Path]:
        if not _MANIFEST_ID.match(manifest_id) or ".." in manifest_id:
            return None
        for suffix in MANIFEST_SUFFIXES:
            candidate = self.directory / f"{manifest_id}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def load(self, manifest_id: str) -> Optional[WorkflowManifest]:
        """Return the manifest or ``None`` when no such file exists.

        Raises:
            ValueError: If the file exists but is not a valid manifest.
        """

        path = self._path_for(manifest_id)
        if path is None:
            return None
        text = path.read_text()
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
        return WorkflowManifest.model_validate(data)

    def list_ids(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p.stem for p in self.directory.iterdir() if p.suffix in MANIFEST_SUFFIXES
        )
