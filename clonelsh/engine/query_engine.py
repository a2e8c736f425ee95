"""
Exact reranking, clone classification and clustering.

The LSH index only narrows the search; everything here works on the stored
embeddings of the candidates it returns.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Collection, DefaultDict, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config import CloneThresholds
from ..core.types import CloneCluster, CloneResult, CloneType, CodeBlock
from ..lsh.lsh_index import Candidate

# Tolerance for floating point error when comparing against min_similarity
SIMILARITY_EPSILON = 1e-9

Edge = Tuple[str, str]


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity clamped to [0, 1]; 0.0 if either vector is zero."""
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(min(1.0, max(0.0, float(np.dot(a, b)) / norm)))


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Clamped cosine similarity of ``query`` against each row of ``matrix``."""
    query_norm = float(np.linalg.norm(query))
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * query_norm
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, dots / np.where(denom > 0, denom, 1.0), 0.0)
    return np.clip(sims, 0.0, 1.0)


def classify_clone(similarity: float, thresholds: CloneThresholds) -> Optional[CloneType]:
    """
    Map a similarity to its clone band.

    Bands are inclusive on the lower bound: exactly 0.95 is type-2 with the
    default thresholds. Returns None below the type-4 bound.
    """
    if similarity >= thresholds.type1:
        return CloneType.TYPE_1
    if similarity >= thresholds.type2:
        return CloneType.TYPE_2
    if similarity >= thresholds.type3:
        return CloneType.TYPE_3
    if similarity >= thresholds.type4:
        return CloneType.TYPE_4
    return None


def rank_candidates(
    query_vector: np.ndarray,
    candidates: Sequence[Candidate],
    order: Mapping[str, int],
    thresholds: CloneThresholds,
    min_similarity: float,
    max_results: int,
    query_ref: Optional[str] = None,
    clone_types: Optional[Collection[CloneType]] = None,
    languages: Optional[Collection[str]] = None,
    exclude_id: Optional[str] = None,
) -> Tuple[List[CloneResult], int, bool]:
    """
    Score candidates by exact cosine similarity and keep the best.

    Ties are broken by insertion order. Candidates below the type-4 bound
    are never returned, whatever ``min_similarity`` says.

    Returns:
        (results, total_matches, truncated)
    """
    pool = [
        c for c in candidates
        if c.block.id != exclude_id
        and c.block.embedding is not None
        and (languages is None or c.block.language in languages)
    ]
    if not pool:
        return [], 0, False

    sims = cosine_similarities(np.asarray(query_vector, dtype=np.float64),
                               np.stack([c.block.embedding for c in pool]))
    type_filter = set(clone_types) if clone_types is not None else None

    matches: List[CloneResult] = []
    for candidate, sim in zip(pool, sims):
        similarity = float(sim)
        if similarity + SIMILARITY_EPSILON < min_similarity:
            continue
        clone_type = classify_clone(similarity, thresholds)
        if clone_type is None:
            continue
        if type_filter is not None and clone_type not in type_filter:
            continue
        matches.append(CloneResult(
            query_ref=query_ref,
            target=candidate.block,
            similarity=similarity,
            clone_type=clone_type,
            estimated_similarity=candidate.estimated_similarity,
            table_matches=candidate.table_matches,
        ))

    matches.sort(key=lambda r: (-r.similarity, order.get(r.target.id, len(order))))
    total = len(matches)
    truncated = total > max_results
    return matches[:max_results], total, truncated


def connected_components(ids: Sequence[str], edges: Collection[Edge]) -> List[List[str]]:
    """Union-find components, members and components in ``ids`` order."""
    parent: Dict[str, str] = {i: i for i in ids}
    rank: Dict[str, int] = {i: 0 for i in ids}

    def find(x: str) -> str:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    def union(a: str, b: str) -> None:
        ra, rb = find(a), find(b)
        if ra == rb:
            return
        if rank[ra] < rank[rb]:
            parent[ra] = rb
        elif rank[ra] > rank[rb]:
            parent[rb] = ra
        else:
            parent[rb] = ra
            rank[ra] += 1

    for a, b in edges:
        union(a, b)

    comp: Dict[str, List[str]] = {}
    for i in ids:
        comp.setdefault(find(i), []).append(i)
    return list(comp.values())


def build_clusters(
    blocks: Sequence[CodeBlock],
    edges: Mapping[Edge, float],
    thresholds: CloneThresholds,
) -> List[CloneCluster]:
    """
    Group blocks joined by ``edges`` into clusters of two or more.

    ``blocks`` must be in insertion order. Clusters are sorted by size
    (largest first), then by the position of their first member.
    """
    ids = [b.id for b in blocks]
    by_id = {b.id: b for b in blocks}
    position = {block_id: i for i, block_id in enumerate(ids)}

    degree: DefaultDict[str, int] = defaultdict(int)
    for a, b in edges:
        degree[a] += 1
        degree[b] += 1

    components = [c for c in connected_components(ids, edges.keys()) if len(c) >= 2]
    components.sort(key=lambda members: (-len(members), position[members[0]]))

    member_of: Dict[str, int] = {}
    for n, members in enumerate(components):
        for block_id in members:
            member_of[block_id] = n
    edge_sims: DefaultDict[int, List[float]] = defaultdict(list)
    for (a, _b), sim in edges.items():
        if a in member_of:
            edge_sims[member_of[a]].append(sim)

    clusters: List[CloneCluster] = []
    for n, members in enumerate(components):
        representative_id = max(members, key=lambda m: (degree[m], -position[m]))
        representative = by_id[representative_id]
        sims = edge_sims[n]
        avg = float(sum(sims) / len(sims)) if sims else 0.0
        member_blocks = [by_id[m] for m in members]
        clusters.append(CloneCluster(
            id=f"cluster-{n + 1}",
            blocks=member_blocks,
            representative=representative,
            avg_similarity=avg,
            clone_type=classify_clone(avg, thresholds) or CloneType.TYPE_4,
            duplicated_lines=sum(b.line_count for b in member_blocks) - representative.line_count,
        ))
    return clusters
