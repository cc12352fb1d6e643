"""Model-fallback retry: try each roster model in order until one succeeds."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AllModelsFailedError(Exception):
    """Raised when every model in the roster failed the same step."""

    def __init__(self, errors: list[tuple[str, BaseException]], message: str = ""):
        self.errors = errors
        super().__init__(message or "All AI models failed.")


async def with_model_fallback(
    step: Callable[[str], Awaitable[T]],
    models: Iterable[str],
    *,
    on_retry: Callable[[str, BaseException], None] | None = None,
    label: str = "",
) -> T:
    """Await ``step(model)`` for each model until one returns.

    ``on_retry(next_model, error)`` is called before every attempt after the
    first. No delay is inserted between attempts.
    """
    errors: list[tuple[str, BaseException]] = []
    for model in models:
        if errors and on_retry is not None:
            on_retry(model, errors[-1][1])
        try:
            return await step(model)
        except Exception as exc:
            logger.warning("Model %s failed%s: %s", model, f" for {label}" if label else "", exc)
            errors.append((model, exc))
    raise AllModelsFailedError(errors)
