from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from pyuca import Collator

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .storage import BucketRef, ObjectEntry, StorageBackend

LOG = logging.getLogger("bucket_index.listing")


@lru_cache(maxsize=1)
def _collator() -> Collator:
    return Collator()


def collation_key(text: str) -> tuple[tuple[int, ...], str]:
    """Sort key that orders names the way an English reader expects.

    Uses the Unicode Collation Algorithm, so case and accents only break
    ties between otherwise equal letters (``"a" < "B" < "c"``). The raw
    string is the final tie-break, which keeps the order total.
    """
    return tuple(_collator().sort_key(text)), text


def sort_names(names: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted(names, key=collation_key))


@dataclass(frozen=True)
class ListingResult:
    """Direct children of ``prefix`` in reading order.

    Prefixes and object keys are canonical, bucket-relative keys; use
    ``display_name`` for the name relative to the listed prefix.
    """

    prefix: str
    prefixes: tuple[str, ...] = ()
    objects: tuple[ObjectEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.prefixes and not self.objects

    def display_name(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix):
            return key[len(self.prefix) :]
        return key


async def list_directory(
    storage: StorageBackend, bucket: BucketRef, prefix: str
) -> ListingResult:
    """List the direct children of ``prefix`` in ``bucket``."""
    children = await storage.list_children(bucket.handle, prefix, "/")
    prefixes = sort_names(set(children.prefixes))
    objects = tuple(
        sorted(
            {entry.key: entry for entry in children.objects}.values(),
            key=lambda entry: collation_key(entry.key),
        )
    )
    LOG.debug(
        "listing %s/%s: %d prefixes, %d objects",
        bucket.name,
        prefix,
        len(prefixes),
        len(objects),
    )
    return ListingResult(prefix=prefix, prefixes=prefixes, objects=objects)
