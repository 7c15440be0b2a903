"""Clustering and temporal helpers shared by the per-type detectors.

Clustering is greedy and seed-based: a point joins a cluster when it shares at
least two entities with the cluster's *seed*, not with any other member.
Results therefore depend on input order and are not transitive; two points
that would connect only through a third member end up in different clusters.
"""
from __future__ import annotations

from collections import Counter
from typing import Dict, List

from ..core.custom_types import DataPoint, DataSourceType
from ..core.timeutils import MS_PER_HOUR

MIN_SHARED_ENTITIES = 2
KEYWORD_MIN_LEN = 4
TOP_KEYWORDS = 10


def cluster_points(points: List[DataPoint], min_size: int) -> List[List[DataPoint]]:
    clusters: List[List[DataPoint]] = []
    processed = set()
    for seed in points:
        if seed.id in processed:
            continue
        cluster = [seed]
        processed.add(seed.id)
        seed_entities = seed.entities
        for other in points:
            if other.id in processed:
                continue
            overlap = sum(1 for e in seed_entities if e in other.entities)
            if overlap >= MIN_SHARED_ENTITIES:
                cluster.append(other)
                processed.add(other.id)
        if len(cluster) >= min_size:
            clusters.append(cluster)
    return clusters


def sort_by_time(points: List[DataPoint]) -> List[DataPoint]:
    return sorted(points, key=lambda p: p.timestamp)


def group_by_time_buckets(points: List[DataPoint], bucket_ms: int = MS_PER_HOUR) -> List[List[DataPoint]]:
    """Variable-width buckets: a new bucket starts once a point is more than
    `bucket_ms` past the current bucket's first point."""
    if not points:
        return []
    ordered = sort_by_time(points)
    buckets: List[List[DataPoint]] = []
    current: List[DataPoint] = []
    bucket_start = ordered[0].timestamp
    for p in ordered:
        if (p.timestamp - bucket_start).total_seconds() * 1000 > bucket_ms:
            if current:
                buckets.append(current)
            current = [p]
            bucket_start = p.timestamp
        else:
            current.append(p)
    if current:
        buckets.append(current)
    return buckets


def extract_keywords(points: List[DataPoint]) -> List[str]:
    """Top-10 lowercase whitespace tokens longer than 3 chars, by frequency.
    Ties keep first-seen order."""
    freq: Counter = Counter()
    for p in points:
        for word in p.content.lower().split():
            if len(word) >= KEYWORD_MIN_LEN:
                freq[word] += 1
    ranked = sorted(freq.items(), key=lambda kv: -kv[1])
    return [w for w, _ in ranked[:TOP_KEYWORDS]]


def extract_entities(points: List[DataPoint]) -> List[str]:
    """Unique entities in first-seen order."""
    return list(dict.fromkeys(e for p in points for e in p.entities))


def entity_frequency(points: List[DataPoint]) -> Counter:
    return Counter(e for p in points for e in p.entities)


def max_entity_count(points: List[DataPoint]) -> int:
    freq = entity_frequency(points)
    return max(freq.values()) if freq else 0


def source_distribution(points: List[DataPoint]) -> Dict[DataSourceType, int]:
    dist: Dict[DataSourceType, int] = {}
    for p in points:
        dist[p.source_type] = dist.get(p.source_type, 0) + 1
    return dist


def span_hours(points: List[DataPoint]) -> float:
    """Hours between the first and last point, in the order given."""
    if len(points) < 2:
        return 0.0
    return (points[-1].timestamp - points[0].timestamp).total_seconds() / 3600.0


def velocity(points: List[DataPoint]) -> float:
    """Points per hour across the span of (time-ordered) `points`."""
    if len(points) < 2:
        return 0.0
    hours = span_hours(points)
    if hours == 0:
        return 0.0
    return len(points) / hours


def momentum(points: List[DataPoint]) -> float:
    """Second-half velocity minus first-half velocity; 0 below four points."""
    if len(points) < 4:
        return 0.0
    mid = len(points) // 2
    return velocity(points[mid:]) - velocity(points[:mid])
