from __future__ import annotations

import logging
import os

from pydantic import ValidationError

from convosim.core.flow.file_spec import LensFileSpec
from convosim.core.registries.registry_manager import RegistryManager
from convosim.io.loaders.errors import LoaderError
from convosim.io.loaders.flow_loader import find_documents, read_document

logger = logging.getLogger(__name__)


def load_lenses(path: str, registries: RegistryManager) -> None:
    """Register goal lenses from ``lenses:`` documents under ``path``."""
    if not os.path.exists(path):
        return
    files = [path] if os.path.isfile(path) else find_documents(path)
    for fp in files:
        data = read_document(fp)
        try:
            spec = LensFileSpec.model_validate(data)
        except ValidationError as exc:
            raise LoaderError(fp, "Invalid goal lens file", cause=exc) from exc
        try:
            lenses = spec.build()
        except (ValidationError, ValueError) as exc:
            raise LoaderError(fp, "Failed to build goal lenses", cause=exc) from exc
        for lens in lenses:
            try:
                registries.lenses.register(lens.id, lens)
            except ValueError as exc:
                raise LoaderError(fp, f"Failed to register goal lens '{lens.id}'", cause=exc) from exc
        logger.debug("Loaded %d goal lenses from %s", len(lenses), fp)
