"""
Best-effort resolution of ObjectId fields to the documents they point at.

Target collections are guessed from field names (``authorId`` -> ``authors``,
``author``); when no guess holds the id, the remaining collections of the
database are probed. Lookups are capped per call, so large databases can leave
references unresolved.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId

from ..utils import serialize

logger = logging.getLogger(__name__)

# camelCase suffixes (authorId) or separated lowercase ones (author_id)
_CAMEL_SUFFIX_RE = re.compile(r"^(.+?)[_-]?(References|Reference|Refs|Ref|Ids|Id)$")
_SNAKE_SUFFIX_RE = re.compile(r"^(.+?)[_-](references|reference|refs|ref|ids|id)$")

DEFAULT_MAX_COLLECTIONS = 20
DEFAULT_MAX_DEPTH = 3


def strip_reference_suffix(field: str) -> str:
    match = _CAMEL_SUFFIX_RE.match(field) or _SNAKE_SUFFIX_RE.match(field)
    if match:
        return match.group(1)
    return field


def pluralize(word: str) -> str:
    lower = word.lower()
    if re.search(r"[^aeiou]y$", lower):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", lower):
        return word + "es"
    return word + "s"


def singularize(word: str) -> str:
    lower = word.lower()
    if lower.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if re.search(r"(s|x|z|ch|sh)es$", lower):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word


def candidate_collection_names(field: str) -> List[str]:
    """Guess collection names a reference field could point into."""
    base = strip_reference_suffix(field)
    names: List[str] = []
    for name in (pluralize(base), singularize(base), base, field):
        if name and name not in names:
            names.append(name)
    return names


def iter_object_ids(value: Any, path: str = "", field: str = "", depth: int = 0,
                    max_depth: int = DEFAULT_MAX_DEPTH) -> List[Tuple[str, str, ObjectId]]:
    """List (path, field name, ObjectId) for every ObjectId under value."""
    found: List[Tuple[str, str, ObjectId]] = []
    if isinstance(value, ObjectId):
        found.append((path, field, value))
    elif isinstance(value, dict):
        if depth >= max_depth:
            return found
        for key, item in value.items():
            if key == "_id" and not path:
                continue
            child = f"{path}.{key}" if path else key
            found.extend(iter_object_ids(item, child, key, depth + 1, max_depth))
    elif isinstance(value, list):
        for i, item in enumerate(value):
            found.extend(iter_object_ids(item, f"{path}.{i}", field, depth, max_depth))
    return found


class ReferenceResolver:
    """Resolves the references of documents in one database.

    ``max_collections`` bounds the number of lookups of a single call.
    """

    def __init__(self, db, max_collections: int = DEFAULT_MAX_COLLECTIONS,
                 max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.db = db
        self.max_collections = max_collections
        self.max_depth = max_depth
        self._collections: Optional[List[str]] = None
        self._probes = 0

    async def collection_names(self) -> List[str]:
        if self._collections is None:
            self._collections = sorted(await self.db.list_collection_names())
        return self._collections

    async def guess_collections(self, field: str) -> List[str]:
        existing = {name.lower(): name for name in await self.collection_names()}
        out: List[str] = []
        for candidate in candidate_collection_names(field):
            name = existing.get(candidate.lower())
            if name and name not in out:
                out.append(name)
        return out

    async def _probe(self, collection: str, oid: ObjectId) -> Optional[Dict[str, Any]]:
        if self._probes >= self.max_collections:
            return None
        self._probes += 1
        return await self.db[collection].find_one({"_id": oid})

    async def lookup(self, field: str, oid: ObjectId) -> Optional[Tuple[str, Dict[str, Any]]]:
        guesses = await self.guess_collections(field)
        for name in guesses:
            doc = await self._probe(name, oid)
            if doc is not None:
                return name, doc
        for name in await self.collection_names():
            if name in guesses or name.startswith("system."):
                continue
            if self._probes >= self.max_collections:
                break
            doc = await self._probe(name, oid)
            if doc is not None:
                return name, doc
        return None

    async def resolve(self, document: Dict[str, Any]) -> Dict[str, Any]:
        references: Dict[str, Any] = {}
        unresolved = 0
        cache: Dict[ObjectId, Optional[Tuple[str, Dict[str, Any]]]] = {}

        for path, field, oid in iter_object_ids(document, max_depth=self.max_depth):
            if oid not in cache:
                cache[oid] = await self.lookup(field, oid)
            hit = cache[oid]
            if hit is None:
                unresolved += 1
                continue
            collection, doc = hit
            references[path] = {"collection": collection, "document": serialize(doc)}

        if unresolved:
            logger.debug("%d reference(s) left unresolved after %d probes", unresolved, self._probes)
        return {"references": references, "unresolved": unresolved}


async def resolve_references(db, document: Dict[str, Any],
                             max_collections: int = DEFAULT_MAX_COLLECTIONS,
                             max_depth: int = DEFAULT_MAX_DEPTH) -> Dict[str, Any]:
    resolver = ReferenceResolver(db, max_collections=max_collections, max_depth=max_depth)
    return await resolver.resolve(document)
