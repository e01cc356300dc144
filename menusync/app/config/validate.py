"""Startup validation of the currency configuration."""

from __future__ import annotations

import logging

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

logger = logging.getLogger("api.config")


def validate_settings(settings) -> None:
    """Check that the currency naming and store URL are coherent.

    Raises :class:`RuntimeError` listing every problem found, so a
    misconfigured deployment fails on boot rather than on the first write.
    """

    problems: list[str] = []
    kinds = list(settings.currency_kinds)
    if not kinds:
        problems.append("currency_kinds is empty")
    if len(set(kinds)) != len(kinds):
        problems.append("currency_kinds has duplicates")
    if settings.primary_currency not in kinds:
        problems.append(
            f"primary_currency {settings.primary_currency!r} not in currency_kinds"
        )
    for legacy, canonical in settings.legacy_currency_aliases.items():
        if legacy in kinds:
            problems.append(f"legacy alias {legacy!r} shadows a canonical kind")
        if canonical not in kinds:
            problems.append(
                f"legacy alias {legacy!r} points at unknown kind {canonical!r}"
            )
    if settings.task_credit_unit < 0:
        problems.append("task_credit_unit must be non-negative")
    try:
        make_url(settings.database_url)
    except ArgumentError:
        problems.append("database_url is not a valid SQLAlchemy URL")

    if problems:
        for problem in problems:
            logger.error("config: %s", problem)
        raise RuntimeError("invalid configuration: " + "; ".join(problems))
    logger.info(
        "config ok",
        extra={"currencies": kinds, "aliases": settings.legacy_currency_aliases},
    )
