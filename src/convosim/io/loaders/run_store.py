"""Minimal YAML persistence for simulation runs."""

from __future__ import annotations

from pathlib import Path
from typing import List

import yaml
from pydantic import ValidationError

from convosim.core.tree.models import SimulationRun
from convosim.io.loaders.errors import LoaderError
from convosim.io.loaders.flow_loader import read_document


def save_run(run: SimulationRun, file_path: str | Path) -> Path:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = run.model_dump(mode="json")
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
    return path


def load_run(file_path: str | Path) -> SimulationRun:
    path = str(file_path)
    data = read_document(path)
    try:
        run = SimulationRun.model_validate(data)
    except ValidationError as exc:
        raise LoaderError(path, "Invalid simulation run", cause=exc) from exc
    problems = _structural_problems(run)
    if problems:
        raise LoaderError(path, "Inconsistent simulation run: " + "; ".join(problems))
    return run


def _structural_problems(run: SimulationRun) -> List[str]:
    problems: List[str] = []
    roots = [t.turn_id for t in run.turns.values() if t.parent_turn_id is None]
    if run.turns and len(roots) != 1:
        problems.append(f"expected exactly one root turn, found {len(roots)}")
    for turn in run.turns.values():
        if turn.parent_turn_id is not None and turn.parent_turn_id not in run.turns:
            problems.append(f"turn {turn.turn_id} has unknown parent {turn.parent_turn_id}")
    for branch in run.branches.values():
        if branch.tip_turn_id is not None and branch.tip_turn_id not in run.turns:
            problems.append(f"branch {branch.branch_id} has unknown tip {branch.tip_turn_id}")
    return problems


__all__ = ["load_run", "save_run"]
