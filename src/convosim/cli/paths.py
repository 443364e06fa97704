from __future__ import annotations

"""Knowledge-base and output path resolution."""

from pathlib import Path


def kb_flows_path(path: str | None) -> str:
    return path or str(Path.cwd() / "kb" / "flows")


def kb_lenses_path(path: str | None) -> str:
    return path or str(Path.cwd() / "kb" / "lenses")


def outputs_dir() -> Path:
    return Path.cwd() / "outputs"


def runs_dir() -> Path:
    return outputs_dir() / "runs"


def default_run_path(run_id: str) -> str:
    runs_dir().mkdir(parents=True, exist_ok=True)
    name = run_id if run_id.endswith(".yaml") else f"{run_id}.yaml"
    return str(runs_dir() / Path(name).name)


def find_run_file(name_or_path: str) -> str:
    """
    Locate a saved run.

    Tries the path as given, then with ``.yaml`` appended, then the bare
    name under ``outputs/runs``.

    Raises:
        FileNotFoundError: If no candidate exists
    """
    candidates = [Path(name_or_path)]
    if not name_or_path.endswith(".yaml"):
        candidates.append(Path(f"{name_or_path}.yaml"))
    base = Path(name_or_path).name
    candidates.append(runs_dir() / (base if base.endswith(".yaml") else f"{base}.yaml"))

    for candidate in candidates:
        if candidate.is_file():
            return str(candidate)
    looked = "\n".join(f"  - {c}" for c in candidates)
    raise FileNotFoundError(f"Run file not found: '{name_or_path}'\nLooked in:\n{looked}")


__all__ = [
    "default_run_path",
    "find_run_file",
    "kb_flows_path",
    "kb_lenses_path",
    "outputs_dir",
    "runs_dir",
]
