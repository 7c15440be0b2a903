from __future__ import annotations

import random
import uuid
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..core.custom_types import DataPoint, DataSourceType
from ..core.timeutils import utcnow

# NOTE: concrete network clients (Reddit, Twitter, USPTO, EDGAR ...) live outside
# this package; the engine only depends on the two coroutines below.


class DataSource(ABC):
    """Pluggable fetch capability for one source type.

    Both coroutines may raise; the aggregator isolates and logs every failure.
    """

    source_type: DataSourceType

    def __init__(self, source_type: DataSourceType):
        self.source_type = DataSourceType(source_type)

    @abstractmethod
    async def fetch(self, config: Dict[str, Any]) -> List[DataPoint]:
        """Return points for `config`, which carries the stored source config
        plus `time_window`, `keywords` and `entities` of the request."""

    @abstractmethod
    async def is_available(self) -> bool:
        ...


# --------------------------- Mock source (demos & tests) ---------------------------
class MockDataSource(DataSource):
    """Generates 5-14 random points from the last 24h.

    Every point carries entities ['entity1', 'entity2'], a uniform sentiment in
    [-1, 1] and a uniform relevance in [0, 1]. Pass `seed` for repeatable output.
    """

    def __init__(self, source_type: DataSourceType, count: Optional[int] = None, seed: Optional[int] = None):
        super().__init__(source_type)
        self.count = count
        self._rng = random.Random(seed)

    async def fetch(self, config: Dict[str, Any]) -> List[DataPoint]:
        count = self.count if self.count is not None else self._rng.randint(5, 14)
        now = utcnow()
        points: List[DataPoint] = []
        for i in range(count):
            points.append(DataPoint(
                id=str(uuid.UUID(int=self._rng.getrandbits(128))),
                source_type=self.source_type,
                source_id=f"mock-{i}",
                content=f"Mock content from {self.source_type.value} source",
                metadata={"mock_data": True, "index": i},
                timestamp=now - timedelta(seconds=self._rng.random() * 24 * 3600),
                entities=["entity1", "entity2"],
                sentiment=self._rng.uniform(-1.0, 1.0),
                relevance_score=self._rng.random(),
            ))
        return points

    async def is_available(self) -> bool:
        return True


__all__ = ["DataSource", "MockDataSource"]
