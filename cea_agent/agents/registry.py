"""
Deployment registry: which classifier and which personas serve each label.

Every deployment is registered here once, at import time, and checked for
exhaustiveness: each label the classifier may emit must have exactly one
handler. Personas are built by factory on each route so prompts always
reflect current configuration.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Union

from cea_agent.agents.base import ClassifierSpec, Persona
from cea_agent.agents.handoff_agent import HumanHandoff
from cea_agent.errors import ClassificationError
from cea_agent.llm.interfaces import ModelRunner
from cea_agent.schemas.conversation_schema import ClassificationResult

logger = logging.getLogger(__name__)

HUMAN_AGENT_LABEL = "request_human_agent"

Handler = Union[Persona, HumanHandoff]


@dataclass(frozen=True)
class Deployment:
    name: str
    classifier: Callable[[], ClassifierSpec]
    personas: dict[str, Callable[[], Persona]]
    labels: tuple[str, ...]
    human_label: str = HUMAN_AGENT_LABEL

    def persona_names(self) -> list[str]:
        return [factory().name for factory in self.personas.values()]


_DEPLOYMENTS: dict[str, Deployment] = {}


def validate_routes(deployment: Deployment) -> None:
    """Raises:
        ValueError: If a label has no handler, or a handler has no label.
    """
    handled = set(deployment.personas) | {deployment.human_label}
    missing = [label for label in deployment.labels if label not in handled]
    extra = sorted(handled - set(deployment.labels))
    if missing or extra:
        raise ValueError(
            f"Deployment '{deployment.name}' routes are inconsistent: "
            f"unhandled labels {missing}, unknown handlers {extra}"
        )
    if deployment.human_label in deployment.personas:
        raise ValueError(f"'{deployment.human_label}' must not be routed to a persona")


def register_deployment(deployment: Deployment) -> None:
    validate_routes(deployment)
    _DEPLOYMENTS[deployment.name] = deployment
    logger.debug("Deployment registered: %s (%d labels)", deployment.name, len(deployment.labels))


def get_deployment(name: str) -> Deployment:
    """Raises:
        KeyError: If the deployment name is not registered.
    """
    if name not in _DEPLOYMENTS:
        raise KeyError(f"Deployment '{name}' not registered. Available: {list(_DEPLOYMENTS)}")
    return _DEPLOYMENTS[name]


def get_registered_deployments() -> list[str]:
    return list(_DEPLOYMENTS)


def normalize_label(label: Any) -> str:
    """'Request-Human-Agent ' -> 'request_human_agent'."""
    return str(label or "").strip().lower().replace("-", "_").replace(" ", "_")


def route(deployment: Deployment, label: str) -> Handler:
    """Resolve ``label`` to the handler that owns it.

    Raises:
        KeyError: If ``label`` is not one of the deployment's labels.
    """
    if label == deployment.human_label:
        return HumanHandoff()
    if label not in deployment.personas:
        raise KeyError(f"No route for label '{label}' in deployment '{deployment.name}'")
    return deployment.personas[label]()


async def classify(
    runner: ModelRunner, deployment: Deployment, history: list[dict[str, Any]]
) -> ClassificationResult:
    """Label the latest message. Never guesses.

    Raises:
        ClassificationError: If the model gave no usable output or a label
            outside the deployment's set.
    """
    result = await runner.classify(deployment.classifier(), history)
    if result is None:
        raise ClassificationError("Classification failed: no output")
    label = normalize_label(result.classification)
    if label not in deployment.labels:
        raise ClassificationError(f"Classification failed: unknown label {result.classification!r}")
    return result.model_copy(update={"classification": label})


def _auto_register() -> None:
    """Register built-in deployments. Called once at import time."""
    from cea_agent.agents import cea, waterhub

    register_deployment(Deployment(
        name="cea",
        classifier=cea.cea_classifier,
        personas=cea.PERSONA_FACTORIES,
        labels=tuple(i.value for i in cea.CeaIntent),
    ))
    register_deployment(Deployment(
        name="waterhub",
        classifier=waterhub.waterhub_classifier,
        personas=waterhub.PERSONA_FACTORIES,
        labels=tuple(i.value for i in waterhub.WaterHubIntent),
    ))


_auto_register()
