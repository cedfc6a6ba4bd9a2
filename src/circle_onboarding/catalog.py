"""
Equipment catalog.

Maps equipment selections ("dumbbells", "full_gym", ...) to catalog ids.
Fetched lazily on first use and cached for the rest of the session.
"""

import logging

from .channels import EquipmentLookup

logger = logging.getLogger(__name__)


class EquipmentCatalog:
    """Session-scoped cache in front of an EquipmentLookup."""

    def __init__(self, lookup: EquipmentLookup | None = None):
        self.lookup = lookup
        # name -> catalog id, or None once we know the catalog doesn't have it
        self._cache: dict[str, str | None] = {}

    async def resolve(self, names: list[str]) -> dict[str, str | None]:
        """Resolve names to ids. Unknown names map to None."""
        unique = list(dict.fromkeys(names))
        missing = [name for name in unique if name not in self._cache]

        if missing:
            found = await self.lookup.lookup_ids(missing) if self.lookup is not None else {}
            for name in missing:
                self._cache[name] = found.get(name)
            unknown = [name for name in missing if found.get(name) is None]
            if unknown:
                logger.info(f"Equipment not in catalog (ignored): {unknown}")

        return {name: self._cache[name] for name in unique}

    async def ids(self, names: list[str]) -> list[str]:
        """Catalog ids for the known names, in selection order."""
        resolved = await self.resolve(names)
        return [equipment_id for equipment_id in resolved.values() if equipment_id]
