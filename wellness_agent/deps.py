"""Dependency bundle injected into every node factory."""

from __future__ import annotations

from dataclasses import dataclass, field

from wellness_agent.collaborators import (
    CompletionModel,
    EscalationPager,
    IntentClassifier,
    PolicyRetriever,
    SchedulingBackend,
)
from wellness_agent.config import EngineSettings


@dataclass
class AgentDeps:
    """Collaborators and tunables shared by the graph nodes.

    ``judge`` is the completion model used to validate policy answers; it
    defaults to ``completion`` but can be a different (e.g. cheaper) model.
    """

    classifier: IntentClassifier
    completion: CompletionModel
    retriever: PolicyRetriever
    scheduler: SchedulingBackend
    pager: EscalationPager
    judge: CompletionModel | None = None
    settings: EngineSettings = field(default_factory=EngineSettings)

    def __post_init__(self) -> None:
        if self.judge is None:
            self.judge = self.completion
