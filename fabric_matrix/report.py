"""Outcome records for best-effort flows."""

from dataclasses import dataclass, field
from enum import Enum


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    # Failed registration: either the account exists or registration is
    # broken, the homeserver response does not tell us which.
    AMBIGUOUS = "ambiguous"


@dataclass
class StepResult:
    name: str
    status: StepStatus
    detail: object = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.SUCCESS


@dataclass
class ConnectReport:
    username: str
    steps: list = field(default_factory=list)

    def record(self, name: str, status: StepStatus, detail=None, error=None) -> StepResult:
        step = StepResult(name=name, status=status, detail=detail, error=error)
        self.steps.append(step)
        return step

    def step(self, name: str) -> StepResult | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    @property
    def connected(self) -> bool:
        """True when login and the coordinator join both succeeded."""
        login, join = self.step("login"), self.step("join")
        return bool(login and login.ok and join and join.ok)

    @property
    def failures(self) -> list:
        return [s for s in self.steps if s.status in (StepStatus.FAILURE, StepStatus.AMBIGUOUS)]

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "connected": self.connected,
            "steps": [
                {"name": s.name, "status": s.status.value, "error": s.error}
                for s in self.steps
            ],
        }


@dataclass
class ActorRegistration:
    actor_id: str
    data: dict
    report: ConnectReport | None = None
