"""Fixed news category taxonomy.

Feed configuration tags each source with a free-text label; storage keeps a
stable integer id. Both directions are derived from the single ``Category``
table below so the write path and the read path cannot drift apart.
"""

from enum import Enum
from typing import Dict, List, Optional

from ..config.settings import settings


class Category(Enum):
    """Content categories with their durable storage ids."""
    ECONOMY = (1, "economy")
    MARKETS = (2, "markets")
    SPORTS = (3, "sports")
    ENTERTAINMENT = (4, "entertainment")
    POLITICS = (5, "politics")
    TECHNOLOGY = (6, "technology")
    SOCIETY = (7, "society")
    OPINION = (8, "opinion")

    def __init__(self, category_id: int, label: str):
        self.category_id = category_id
        self.label = label


# Labels used by the Korean press feeds the taxonomy was first built for
ALIASES: Dict[str, Category] = {
    "경제": Category.ECONOMY,
    "증권": Category.MARKETS,
    "스포츠": Category.SPORTS,
    "연예": Category.ENTERTAINMENT,
    "정치": Category.POLITICS,
    "it": Category.TECHNOLOGY,
    "tech": Category.TECHNOLOGY,
    "사회": Category.SOCIETY,
    "오피니언": Category.OPINION,
}

_BY_LABEL: Dict[str, Category] = {c.label: c for c in Category}
_BY_LABEL.update(ALIASES)
_BY_ID: Dict[int, Category] = {c.category_id: c for c in Category}


class CategoryResolver:
    """Bidirectional label <-> id mapping with a default for unknown labels."""

    def __init__(self, default_id: int = None):
        default_id = settings.default_category_id if default_id is None else default_id
        if default_id not in _BY_ID:
            raise ValueError(f"Default category id {default_id} is not a known category")
        self.default_id = default_id

    def lookup_label(self, label: Optional[str]) -> Optional[int]:
        """Strict lookup: the id for a known label, else None."""
        if not label:
            return None
        category = _BY_LABEL.get(label.strip().lower())
        return category.category_id if category else None

    def resolve_label(self, label: Optional[str]) -> int:
        """Write-path lookup that never fails; unknown labels get the default id."""
        category_id = self.lookup_label(label)
        return self.default_id if category_id is None else category_id

    def label_for(self, category_id: Optional[int]) -> Optional[str]:
        """Read-path lookup: the canonical label, or None outside the known set."""
        category = _BY_ID.get(category_id)
        return category.label if category else None

    def labels(self) -> List[str]:
        return [c.label for c in Category]

    def ids(self) -> List[int]:
        return [c.category_id for c in Category]


resolver = CategoryResolver()
