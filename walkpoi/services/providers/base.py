from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from shapely.geometry.base import BaseGeometry

from walkpoi.core.contracts import RawEntity


class PoiProvider(ABC):
    """A third-party POI source. Slow, rate-limited, allowed to fail."""

    name: str = "abstract"

    @abstractmethod
    def fetch(self, geom: BaseGeometry, tags: Sequence[Tuple[str, str]]) -> List[RawEntity]:
        """
        Entities inside `geom` matching any of `tags`.

        Raises ProviderFailure on network errors, timeouts or malformed
        responses. Entities without coordinates are dropped, not errors.
        """
        ...
