"""
Sticky conversation slots.

A slot (contract number, locality) is filled from the classifier's
extraction only when the value validates, and then persists across turns
until a new valid extraction overwrites it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from cea_agent.schemas.conversation_schema import ClassificationResult, ConversationState
from cea_agent.utils import normalize_contract

logger = logging.getLogger(__name__)

MIN_CONTRACT_DIGITS = 6
MAX_CONTRACT_DIGITS = 10
MIN_LOCALITY_LENGTH = 2
MAX_LOCALITY_LENGTH = 80


def _validate_contract(value: str) -> bool:
    return MIN_CONTRACT_DIGITS <= len(value) <= MAX_CONTRACT_DIGITS


def _validate_locality(value: str) -> bool:
    return (
        MIN_LOCALITY_LENGTH <= len(value) <= MAX_LOCALITY_LENGTH
        and re.search(r"[^\W\d_]", value) is not None
    )


def _normalize_locality(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


@dataclass(frozen=True)
class SlotDefinition:
    """A remembered value and how to clean and check it."""

    name: str
    display_name: str
    extraction_field: str
    normalizer: Callable[[str], str]
    validator: Callable[[str], bool]


STICKY_SLOTS: list[SlotDefinition] = [
    SlotDefinition(
        name="contract_number",
        display_name="contrato",
        extraction_field="extracted_contract",
        normalizer=normalize_contract,
        validator=_validate_contract,
    ),
    SlotDefinition(
        name="locality",
        display_name="localidad",
        extraction_field="extracted_locality",
        normalizer=_normalize_locality,
        validator=_validate_locality,
    ),
]


def clean_slot_value(definition: SlotDefinition, raw: Optional[str]) -> Optional[str]:
    """Normalized value, or ``None`` if it does not validate."""
    if not raw:
        return None
    value = definition.normalizer(str(raw))
    return value if definition.validator(value) else None


def apply_extraction(state: ConversationState, result: ClassificationResult) -> list[str]:
    """Copy valid extracted values into ``state``; returns the slots that changed."""
    changed = []
    for definition in STICKY_SLOTS:
        raw = getattr(result, definition.extraction_field)
        value = clean_slot_value(definition, raw)
        if value is None:
            if raw:
                logger.debug("Ignoring invalid %s extraction: %r", definition.name, raw)
            continue
        if getattr(state, definition.name) != value:
            setattr(state, definition.name, value)
            changed.append(definition.name)
    return changed


def known_slots(state: ConversationState) -> dict[str, str]:
    """Filled sticky slots keyed by display name."""
    return {
        d.display_name: getattr(state, d.name)
        for d in STICKY_SLOTS
        if getattr(state, d.name)
    }
