from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from .microagent import MicroagentOutput


def normalize_item(item: str) -> str:
    return re.sub(r"\s+", " ", (item or "").strip()).lower()


@dataclass
class VoteTally:
    """Consensus for one list field across replicas."""

    items: List[str] = field(default_factory=list)
    confirmed: List[str] = field(default_factory=list)
    votes: Dict[str, int] = field(default_factory=dict)


def tally(lists: Sequence[Sequence[str]], threshold: int, keep_unconfirmed: bool = True) -> VoteTally:
    """
    Count in how many replicas each item appears.

    Items are compared case- and whitespace-insensitively and counted once per
    replica. Items reaching ``threshold`` votes come first (most votes, then
    first appearance); the rest follow in first-appearance order when
    ``keep_unconfirmed`` is set. The spelling of the first occurrence is kept.
    """
    threshold = max(1, min(threshold, len(lists)))
    votes: Dict[str, int] = {}
    first_seen: Dict[str, Tuple[int, int]] = {}
    spelling: Dict[str, str] = {}
    for replica, items in enumerate(lists):
        counted = set()
        for position, item in enumerate(items):
            key = normalize_item(item)
            if not key or key in counted:
                continue
            counted.add(key)
            votes[key] = votes.get(key, 0) + 1
            if key not in first_seen:
                first_seen[key] = (replica, position)
                spelling[key] = item.strip()

    confirmed = sorted((k for k in votes if votes[k] >= threshold), key=lambda k: (-votes[k], first_seen[k]))
    unconfirmed = sorted((k for k in votes if votes[k] < threshold), key=lambda k: first_seen[k])
    ordered = confirmed + (unconfirmed if keep_unconfirmed else [])
    return VoteTally(
        items=[spelling[k] for k in ordered],
        confirmed=[spelling[k] for k in confirmed],
        votes={spelling[k]: votes[k] for k in ordered},
    )


def pick_summary(outputs: Sequence[MicroagentOutput], decisions: VoteTally, todos: VoteTally) -> str:
    """Summary of the replica sharing most confirmed items; earliest replica wins ties."""
    agreed = {normalize_item(i) for i in decisions.confirmed} | {normalize_item(i) for i in todos.confirmed}
    best_index, best_score = 0, -1
    for index, output in enumerate(outputs):
        mine = {normalize_item(i) for i in output.decisions} | {normalize_item(i) for i in output.todos}
        score = len(mine & agreed)
        if score > best_score:
            best_index, best_score = index, score
    return outputs[best_index].summary.strip()
