"""Listing records and the provider the game engine reads them from.

Listings are collected elsewhere (scrapers write cache files); the engine only
ever reads them. ``InMemoryListingProvider`` serves the cached records per
difficulty tier.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

_CORE_KEYS = {'id', 'make', 'model', 'year', 'price', 'images', 'originalUrl'}


@dataclass(frozen=True)
class Listing:
    id: str
    make: str
    model: str
    year: int
    price: float
    attributes: Dict[str, object] = field(default_factory=dict)
    images: tuple = ()
    original_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'Listing':
        return cls(
            id=str(data['id']),
            make=data.get('make') or '',
            model=data.get('model') or '',
            year=int(data.get('year') or 0),
            price=float(data.get('price') or 0),
            attributes={k: v for k, v in data.items() if k not in _CORE_KEYS},
            images=tuple(data.get('images') or ()),
            original_url=data.get('originalUrl'),
        )

    def public_view(self) -> dict:
        """What a player may see before guessing: everything but the price."""
        view = {
            'id': self.id,
            'make': self.make,
            'model': self.model,
            'year': self.year,
            'images': list(self.images),
        }
        view.update(self.attributes)
        return view

    def reveal(self) -> dict:
        view = self.public_view()
        view['price'] = self.price
        view['originalUrl'] = self.original_url
        return view


class InMemoryListingProvider:
    """Serves listings grouped by difficulty tier ('easy', 'hard')."""

    def __init__(self, listings_by_difficulty: Dict[str, Iterable[Listing]]):
        self._by_difficulty: Dict[str, List[Listing]] = {}
        self._by_id: Dict[str, Listing] = {}
        for difficulty, listings in listings_by_difficulty.items():
            usable = [l for l in listings if l.price > 0]
            self._by_difficulty[difficulty] = usable
            for listing in usable:
                self._by_id[listing.id] = listing

    @classmethod
    def from_cache_files(cls, paths: Dict[str, str]) -> 'InMemoryListingProvider':
        """Load ``{"data": [...], "timestamp": ...}`` cache files, one per difficulty.

        A missing or unreadable file leaves that tier empty; play on the tier
        then fails with NoListingsAvailable rather than crashing startup.
        """
        loaded = {}
        for difficulty, path in paths.items():
            if not path or not os.path.exists(path):
                logger.warning(f"[listings] difficulty={difficulty} no cache file at {path}")
                loaded[difficulty] = []
                continue
            try:
                with open(path, encoding='utf-8') as fh:
                    payload = json.load(fh)
                rows = payload.get('data', []) if isinstance(payload, dict) else payload
                loaded[difficulty] = [Listing.from_dict(row) for row in rows]
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.error(f"[listings] difficulty={difficulty} failed to read {path}: {exc}")
                loaded[difficulty] = []
                continue
            logger.info(f"[listings] difficulty={difficulty} loaded={len(loaded[difficulty])} from {path}")
        return cls(loaded)

    def candidates(self, difficulty: str) -> List[Listing]:
        return list(self._by_difficulty.get(difficulty, ()))

    def get(self, listing_id: str) -> Optional[Listing]:
        return self._by_id.get(listing_id)

    def counts(self) -> Dict[str, int]:
        return {d: len(ls) for d, ls in self._by_difficulty.items()}
