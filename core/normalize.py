from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import pandas as pd


STATE_OPEN = "Em Aberto"
STATE_IN_PROGRESS = "Em Andamento"
STATE_ON_HOLD = "Em Espera"
STATE_CLOSED = "Fechado"
STATE_CANCELLED = "Cancelado"

CANONICAL_STATES: Tuple[str, ...] = (
    STATE_OPEN,
    STATE_IN_PROGRESS,
    STATE_ON_HOLD,
    STATE_CLOSED,
    STATE_CANCELLED,
)

PRIORITY_UNDEFINED = "Não definido"
CANONICAL_PRIORITIES: Tuple[str, ...] = ("P1", "P2", "P3", "P4", PRIORITY_UNDEFINED)
HIGH_PRIORITIES = frozenset({"P1", "P2"})


@dataclass(frozen=True)
class StateRule:
    result: str
    tokens: Tuple[str, ...]

    def matches(self, text: str) -> bool:
        return any(tok in text for tok in self.tokens)


@dataclass(frozen=True)
class PriorityRule:
    result: str
    exact: Tuple[str, ...]
    prefixes: Tuple[str, ...]
    contains: Tuple[str, ...]

    def matches(self, text: str) -> bool:
        return (
            text in self.exact
            or text.startswith(self.prefixes)
            or any(tok in text for tok in self.contains)
        )


# First match wins.
STATE_RULES: Tuple[StateRule, ...] = (
    StateRule(STATE_CANCELLED, ("canceled", "cancelled", "cancelado", "cancelada")),
    StateRule(STATE_CLOSED, ("closed", "resolved", "fechado", "resolvido")),
    StateRule(STATE_ON_HOLD, ("on hold", "hold", "espera", "pending", "pendente", "aguardando")),
    StateRule(
        STATE_IN_PROGRESS,
        (
            "assigned",
            "progress",
            "andamento",
            "atribuído",
            "em atendimento",
            "working",
            "active",
            "ativo",
            "processing",
            "processando",
        ),
    ),
    StateRule(STATE_OPEN, ("opened", "new", "novo", "aberto")),
)


def _tier(level: int, word: str, word_pt: str) -> PriorityRule:
    return PriorityRule(
        result=f"P{level}",
        exact=(f"p{level}", f"{level}", f"priority {level}", word, word_pt),
        prefixes=(f"p{level} -", f"p{level}-", f"{level} -", f"{level}-"),
        contains=(f"{word} priority", f"{word_pt} prioridade"),
    )


PRIORITY_RULES: Tuple[PriorityRule, ...] = (
    # P1 matches the bare words anywhere, the other tiers need "<word> priority".
    PriorityRule(
        result="P1",
        exact=("p1", "1", "priority 1", "critical", "crítico"),
        prefixes=("p1 -", "p1-", "1 -", "1-"),
        contains=("critical", "crítico"),
    ),
    _tier(2, "high", "alta"),
    _tier(3, "medium", "média"),
    _tier(4, "low", "baixa"),
)


def _clean(value: object) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip().lower()


def normalize_state(raw: object) -> str:
    """Map a free-text state (English or Portuguese) to a canonical state."""
    s = _clean(raw)
    if not s:
        return STATE_OPEN
    for rule in STATE_RULES:
        if rule.matches(s):
            return rule.result
    return STATE_OPEN


def normalize_priority(raw: object) -> str:
    """Map a free-text priority to P1..P4, or "Não definido" when nothing matches."""
    p = _clean(raw)
    if not p:
        return PRIORITY_UNDEFINED
    for rule in PRIORITY_RULES:
        if rule.matches(p):
            return rule.result
    return PRIORITY_UNDEFINED


def is_high_priority(raw: object) -> bool:
    return normalize_priority(raw) in HIGH_PRIORITIES


def is_cancelled(raw: object) -> bool:
    return normalize_state(raw) == STATE_CANCELLED


def is_on_hold(raw: object) -> bool:
    return normalize_state(raw) == STATE_ON_HOLD


def is_active_incident(raw: object) -> bool:
    return normalize_state(raw) not in (STATE_CLOSED, STATE_CANCELLED)
