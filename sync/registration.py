"""
sync/registration.py -- Registration pipeline: stages run after a user is created.

Every local registration (native sign-up, inbound sync) is announced with
RegistrationPipeline.dispatch(user_id). Each stage returns HANDLED or
IGNORED. dispatch never raises: a failing stage is logged and counted as
IGNORED, so the registration that triggered it has already succeeded and
stays successful.

The HTTP layer runs dispatch() as a background task after the response is
built (see api/routes/v1/auth.py and api/routes/v1/sync.py).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger("bsabridge.sync")


class RegistrationOutcome(str, Enum):
    HANDLED = "handled"
    IGNORED = "ignored"


class RegistrationStage(Protocol):
    name: str

    def run(self, user_id: int) -> RegistrationOutcome: ...


class RegistrationPipeline:
    def __init__(self, stages: list[RegistrationStage]) -> None:
        self.stages = list(stages)

    def dispatch(self, user_id: int) -> dict[str, RegistrationOutcome]:
        """Run every stage for user_id; return each stage's outcome by name."""
        outcomes: dict[str, RegistrationOutcome] = {}
        for stage in self.stages:
            try:
                outcomes[stage.name] = stage.run(user_id)
            except Exception:
                logger.exception("Registration stage %s failed for user_id=%s", stage.name, user_id)
                outcomes[stage.name] = RegistrationOutcome.IGNORED
        return outcomes
