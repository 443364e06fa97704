from __future__ import annotations

"""Loader error with file context."""

import os
from typing import Iterable, List

from pydantic import ValidationError


class LoaderError(RuntimeError):
    """A flow, lens or run file could not be read, validated or registered."""

    def __init__(self, file_path: str, message: str, *, cause: Exception | None = None):
        self.file_path = file_path
        self.message = message
        self.cause = cause
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        base = f"{self.message} ({self._display_path(self.file_path)})"
        if isinstance(self.cause, ValidationError):
            return f"{base}: {self._summarize(self.cause.errors())}"
        if self.cause is not None:
            return f"{base}: {self.cause}"
        return base

    @staticmethod
    def _display_path(path: str) -> str:
        try:
            return os.path.relpath(path)
        except ValueError:  # Different drive on Windows
            return path

    @staticmethod
    def _summarize(errors: Iterable[dict], limit: int = 3) -> str:
        error_list = list(errors)
        lines: List[str] = []
        for err in error_list[:limit]:
            loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
            lines.append(f"{loc}: {err.get('msg') or err.get('type') or 'invalid'}")
        if len(error_list) > limit:
            lines.append(f"... ({len(error_list) - limit} more)")
        return "; ".join(lines)

    def __str__(self) -> str:
        return self._build_message()
