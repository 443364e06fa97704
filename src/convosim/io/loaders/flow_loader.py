from __future__ import annotations

import glob
import json
import logging
import os
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError

from convosim.core.errors import SimulatorError
from convosim.core.flow.file_spec import FlowFileSpec
from convosim.core.flow.models import FlowGraph
from convosim.core.registries.registry_manager import RegistryManager
from convosim.io.loaders.errors import LoaderError

logger = logging.getLogger(__name__)

FLOW_PATTERNS = ("*.yaml", "*.yml", "*.json")


def read_document(path: str) -> Dict[str, Any]:
    """Read a YAML or JSON mapping. Empty files yield an empty dict."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
        raise LoaderError(path, "Unreadable document", cause=exc) from exc
    if not isinstance(data, dict):
        raise LoaderError(path, f"Expected a mapping at top level, got {type(data).__name__}")
    return data


def find_documents(path: str) -> List[str]:
    files: List[str] = []
    for pattern in FLOW_PATTERNS:
        files.extend(glob.glob(os.path.join(path, "**", pattern), recursive=True))
    return sorted(files)


def load_flow_file(path: str) -> FlowGraph:
    """Parse and build a single flow document."""
    data = read_document(path)
    try:
        spec = FlowFileSpec.model_validate(data)
    except ValidationError as exc:
        raise LoaderError(path, "Invalid flow definition", cause=exc) from exc
    try:
        return spec.build()
    except (ValidationError, ValueError, SimulatorError) as exc:
        raise LoaderError(path, f"Failed to build flow '{spec.id}'", cause=exc) from exc


def load_flows(path: str, registries: RegistryManager) -> None:
    """Register every flow document under ``path`` (a directory or a single file)."""
    if not os.path.exists(path):
        return
    files = [path] if os.path.isfile(path) else find_documents(path)
    for fp in files:
        flow = load_flow_file(fp)
        try:
            registries.flows.register(flow.id, flow)
        except ValueError as exc:
            raise LoaderError(fp, f"Failed to register flow '{flow.id}'", cause=exc) from exc
        logger.debug("Loaded flow %s (%d nodes) from %s", flow.id, len(flow.nodes), fp)
