"""
Cross-chunk memory deduplication.

Two memories of the same type (and workspace) are duplicates when their
normalized content matches exactly or has a Levenshtein similarity of at
least 0.85. Entities with equal content must also agree on ``entityType``
and ``name`` metadata.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Dict, List

from rapidfuzz.distance import Levenshtein

from ..schema import ExtractedMemory, ExtractedRelationship
from ...utils.timeutils import parse_iso

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.85

_SPACE_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r"[^\w\s]")


def normalize_content(content: str) -> str:
    text = _PUNCT_RE.sub("", (content or "").lower())
    return _SPACE_RE.sub(" ", text).strip()


class MemoryDeduplicator:
    def __init__(self, threshold: float = SIMILARITY_THRESHOLD):
        self.threshold = threshold

    def similarity(self, left: ExtractedMemory, right: ExtractedMemory) -> float:
        if left.type != right.type or left.workspace_id != right.workspace_id:
            return 0.0
        a, b = normalize_content(left.content), normalize_content(right.content)
        if a == b:
            if left.type == "entity":
                same_kind = left.metadata.get("entityType") == right.metadata.get("entityType")
                same_name = normalize_content(str(left.metadata.get("name") or "")) == normalize_content(
                    str(right.metadata.get("name") or "")
                )
                return 1.0 if same_kind and same_name else 0.7
            return 1.0
        if not a and not b:
            return 1.0
        score = Levenshtein.normalized_similarity(a, b)
        return score if score >= self.threshold else 0.0

    def deduplicate(self, memories: List[ExtractedMemory]) -> List[ExtractedMemory]:
        by_type: Dict[str, List[ExtractedMemory]] = {}
        for memory in memories:
            by_type.setdefault(memory.type, []).append(memory)

        unique: List[ExtractedMemory] = []
        for group_members in by_type.values():
            for group in self._groups(group_members):
                unique.append(group[0] if len(group) == 1 else self.merge(group))

        removed = len(memories) - len(unique)
        if removed:
            logger.info(f"Deduplicated {len(memories)} memories to {len(unique)} ({removed} duplicates merged)")
        return unique

    def _groups(self, memories: List[ExtractedMemory]) -> List[List[ExtractedMemory]]:
        groups = []
        taken = set()
        for i, anchor in enumerate(memories):
            if i in taken:
                continue
            group = [anchor]
            taken.add(i)
            for j in range(i + 1, len(memories)):
                if j not in taken and self.similarity(anchor, memories[j]) >= self.threshold:
                    group.append(memories[j])
                    taken.add(j)
            groups.append(group)
        return groups

    def merge(self, memories: List[ExtractedMemory]) -> ExtractedMemory:
        if not memories:
            raise ValueError("Cannot merge an empty list of memories")
        if len(memories) == 1:
            return memories[0]

        ranked = sorted(memories, key=lambda m: m.confidence, reverse=True)
        best = ranked[0]

        metadata = dict(best.metadata)
        for memory in ranked[1:]:
            for key, value in memory.metadata.items():
                if metadata.get(key) is None:
                    metadata[key] = value

        chunks = sorted({c for m in memories for c in (m.source_chunks or [])})
        chunk_confidence = [c for m in memories for c in (m.chunk_confidence or [])]
        message_ids = sorted({mid for m in memories for mid in m.source_message_ids})

        return replace(
            best,
            metadata=metadata,
            source_message_ids=message_ids,
            created_at=_earliest([m.created_at for m in memories]),
            source_chunks=chunks or None,
            chunk_confidence=chunk_confidence or None,
            merged_from=[m.id for m in memories],
        )

    def merge_relationships(
        self,
        memories: List[ExtractedMemory],
        relationships: List[ExtractedRelationship],
    ) -> List[ExtractedRelationship]:
        """Point relationships at surviving memory ids; drop orphans and keep the strongest duplicate."""
        alive = {m.id for m in memories}
        remap = {m.id: m.id for m in memories}
        for memory in memories:
            for old_id in memory.merged_from or []:
                remap[old_id] = memory.id

        kept: Dict[tuple, ExtractedRelationship] = {}
        for rel in relationships:
            source = remap.get(rel.from_memory_id, rel.from_memory_id)
            target = remap.get(rel.to_memory_id, rel.to_memory_id)
            if source not in alive or target not in alive:
                continue
            key = (source, target, rel.relationship_type)
            current = kept.get(key)
            if current is None or rel.confidence > current.confidence:
                kept[key] = replace(rel, from_memory_id=source, to_memory_id=target)
        return list(kept.values())


def _earliest(timestamps: List[str]) -> str:
    dated = [(parse_iso(ts), ts) for ts in timestamps if ts]
    dated = [(dt, ts) for dt, ts in dated if dt is not None]
    if not dated:
        return timestamps[0] if timestamps else ""
    return min(dated, key=lambda pair: pair[0])[1]
