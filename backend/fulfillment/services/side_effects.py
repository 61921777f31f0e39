# Overview: Best-effort execution of post-commit side effects.

"""
Side effects (billing, notifications, email, webhooks, audit) run after the
primary commit of an operation. Each one is attempted independently:

- success records SideEffectOutcome(ok=True, detail=<return value>)
- failure rolls the session back to a clean state, logs with
  logger.exception, and records SideEffectOutcome(ok=False, error=str(e))

A side effect never raises to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app

from ..extensions import db


@dataclass
class SideEffectOutcome:
    kind: str
    ok: bool
    error: str | None = None
    detail: Any = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "ok": self.ok,
            "error": self.error,
            "detail": self.detail,
        }


@dataclass
class SideEffectLog:
    """Ordered collection of outcomes for one operation."""
    outcomes: list[SideEffectOutcome] = field(default_factory=list)

    def run(self, kind: str, fn: Callable[[], Any], *, context: str = "") -> SideEffectOutcome:
        outcome = run_side_effect(kind, fn, context=context)
        self.outcomes.append(outcome)
        return outcome

    @property
    def failures(self) -> list[SideEffectOutcome]:
        return [o for o in self.outcomes if not o.ok]


def run_side_effect(kind: str, fn: Callable[[], Any], *, context: str = "") -> SideEffectOutcome:
    try:
        detail = fn()
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Side effect %s failed %s", kind, context)
        return SideEffectOutcome(kind=kind, ok=False, error=str(e) or e.__class__.__name__)
    return SideEffectOutcome(kind=kind, ok=True, detail=detail)
