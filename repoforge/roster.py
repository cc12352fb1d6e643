"""Model roster: the ordered list of models every AI step tries in turn."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

PRIMARY_MODELS: tuple[str, ...] = (
    "gemini-3-pro-preview",
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-pro-latest",
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash-preview-09-2025",
    "gemini-2.5-flash-lite-preview-09-2025",
    "gemini-2.0-flash-exp",
    "gemini-2.0-flash",
    "gemini-2.0-flash-001",
)

FALLBACK_MODELS: tuple[str, ...] = (
    "gemini-2.0-flash-lite-001",
    "gemini-2.0-flash-lite",
    "gemini-2.0-flash-lite-preview-02-05",
    "gemini-2.0-flash-lite-preview",
    "gemini-exp-1206",
    "gemma-3-1b-it",
    "gemma-3-4b-it",
    "gemma-3-12b-it",
    "gemma-3-27b-it",
    "gemma-3n-e4b-it",
    "gemma-3n-e2b-it",
)


class ModelRoster(Sequence[str]):
    """Immutable model sequence, primary tier before fallback tier."""

    def __init__(self, primary: Iterable[str], fallback: Iterable[str] = ()):
        seen: set[str] = set()
        models: list[str] = []
        for name in (*primary, *fallback):
            if name and name not in seen:
                seen.add(name)
                models.append(name)
        if not models:
            raise ValueError("Model roster must contain at least one model")
        self._models = tuple(models)

    @classmethod
    def default(cls) -> ModelRoster:
        return cls(PRIMARY_MODELS, FALLBACK_MODELS)

    @property
    def primary(self) -> str:
        """The first model tried; used where no fallback applies."""
        return self._models[0]

    def __getitem__(self, index):
        return self._models[index]

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __repr__(self) -> str:
        return f"ModelRoster({list(self._models)!r})"
