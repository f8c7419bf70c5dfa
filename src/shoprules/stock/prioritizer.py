"""Make sure every inventory unit ships from exactly one package."""

from __future__ import annotations

from typing import List, Sequence

from ..utils.logging import get_logger
from .models import ContentState
from .package import Package

logger = get_logger(__name__)


class Prioritizer:
    """Resolve inventory units that were packed more than once.

    Packages are considered in the order given. On-hand placements are
    preferred over backordered ones; within the same state the first package
    keeps the unit. Packages left empty are dropped.
    """

    def __init__(self, packages: Sequence[Package]) -> None:
        self.packages = list(packages)

    def prioritize(self) -> List[Package]:
        assigned = set()
        for state in (ContentState.ON_HAND, ContentState.BACKORDERED):
            for package in self.packages:
                for item in [i for i in package.contents if i.state == state]:
                    key = id(item.inventory_unit)
                    if key in assigned:
                        package.remove(item.inventory_unit)
                        logger.debug(f"Removed duplicate {item.inventory_unit!r} from {package!r}")
                    else:
                        assigned.add(key)

        packages = [package for package in self.packages if not package.empty]
        dropped = len(self.packages) - len(packages)
        if dropped:
            logger.info(f"Dropped {dropped} empty package(s) after prioritizing")
        return packages
