from __future__ import annotations

from typing import ClassVar, Dict, Generic, Iterable, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class NameRegistry(BaseModel, Generic[T]):
    """Items keyed by id. Subclasses set ``kind`` for error messages."""

    kind: ClassVar[str] = "item"

    items: Dict[str, T] = Field(default_factory=dict)

    def register(self, name: str, item: T) -> None:
        if name in self.items:
            raise ValueError(f"Duplicate {self.kind}: {name}")
        self.items[name] = item

    def get(self, name: str) -> T:
        if name not in self.items:
            available = ", ".join(sorted(self.items.keys())) or "none"
            raise KeyError(f"Unknown {self.kind}: {name}. Available: {available}")
        return self.items[name]

    def has(self, name: str) -> bool:
        return name in self.items

    def all(self) -> Iterable[T]:
        return self.items.values()

    def names(self) -> Iterable[str]:
        return sorted(self.items.keys())
