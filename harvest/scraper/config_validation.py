from __future__ import annotations

from dataclasses import replace
from typing import Literal, TypeVar, Union

from . import config
from .logging_utils import _scraper_event
from .pagination import PaginationSettings
from .sampler import SamplerSettings
from .utils import log_line

Entrypoint = Literal["cli", "tests"]
Settings = TypeVar("Settings", bound=Union[PaginationSettings, SamplerSettings])


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def _adjust(settings: Settings, field: str, adjusted: int, *, entrypoint: Entrypoint) -> Settings:
    value = getattr(settings, field)
    _scraper_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field}={value} is out of range; clamping to {adjusted}.")
    return replace(settings, **{field: adjusted})


def validate_timeouts(entrypoint: Entrypoint) -> None:
    timeout_fields = [
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("SELECTOR_TIMEOUT_SECONDS", config.SELECTOR_TIMEOUT_SECONDS),
        ("TRENDING_TIMEOUT_SECONDS", config.TRENDING_TIMEOUT_SECONDS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )


def validate_settings(settings: Settings, entrypoint: Entrypoint = "cli") -> Settings:
    """Validate per-run settings and return them with soft fixes applied.

    Raises ``ValueError`` for blocking misconfigurations. Out-of-range
    recycle intervals and retry budgets are clamped and logged instead.
    """

    validate_timeouts(entrypoint)

    if isinstance(settings, PaginationSettings):
        if settings.start_page < 1:
            _raise_config_error(
                "start_page must be at least 1.",
                entrypoint=entrypoint,
                error="invalid_start_page",
            )
        if settings.start_page > settings.max_page:
            _raise_config_error(
                f"start_page ({settings.start_page}) must not exceed max_page ({settings.max_page}).",
                entrypoint=entrypoint,
                error="invalid_page_range",
            )
        if settings.delay_min < 0 or settings.delay_min > settings.delay_max:
            _raise_config_error(
                "delay range must satisfy 0 <= delay_min <= delay_max.",
                entrypoint=entrypoint,
                error="invalid_delay_range",
            )
        if settings.failure_threshold < 1:
            settings = _adjust(settings, "failure_threshold", 1, entrypoint=entrypoint)
        if settings.recycle_every < 1:
            settings = _adjust(settings, "recycle_every", 1, entrypoint=entrypoint)
        if settings.page_retries < 0:
            settings = _adjust(settings, "page_retries", 0, entrypoint=entrypoint)
        return settings

    if settings.snapshot_stride < 1:
        _raise_config_error(
            "snapshot_stride must be at least 1.",
            entrypoint=entrypoint,
            error="invalid_snapshot_stride",
        )
    if settings.scroll_steps < 0:
        _raise_config_error(
            "scroll_steps must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_scroll_steps",
        )
    if settings.retries < 0:
        settings = _adjust(settings, "retries", 0, entrypoint=entrypoint)
    if settings.stable_snapshots < 0:
        settings = _adjust(settings, "stable_snapshots", 0, entrypoint=entrypoint)
    return settings


__all__ = ["validate_settings", "validate_timeouts", "Entrypoint"]
