from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import dataclasses
import logging
import threading
import types

from .ingress import Ingress
from .k8sobject import KubernetesObject, ResourceKey

CacheListener = Callable[[int], None]

# What we can be asked to delete: a kind and a key.
CacheDeletion = Tuple[str, ResourceKey]

CacheEntry = Union[KubernetesObject, Ingress]

# Kinds the cache keeps, mapped to the snapshot table that holds them.
CACHED_KINDS = {
    'Service': 'services',
    'Endpoints': 'endpoints',
    'Secret': 'secrets',
    'Ingress': 'ingresses',
}


def _empty_table() -> Mapping:
    return types.MappingProxyType({})


@dataclasses.dataclass(frozen=True)
class CacheSnapshot:
    """
    An immutable, consistent view of the cache at one generation. Lookups
    return None for anything we don't have; they never raise.
    """

    generation: int = 0
    services: Mapping[ResourceKey, KubernetesObject] = dataclasses.field(default_factory=_empty_table)
    endpoints: Mapping[ResourceKey, KubernetesObject] = dataclasses.field(default_factory=_empty_table)
    secrets: Mapping[ResourceKey, KubernetesObject] = dataclasses.field(default_factory=_empty_table)
    ingress_map: Mapping[ResourceKey, Ingress] = dataclasses.field(default_factory=_empty_table)

    def get_service(self, key: ResourceKey) -> Optional[KubernetesObject]:
        return self.services.get(key)

    def get_endpoints(self, key: ResourceKey) -> Optional[KubernetesObject]:
        return self.endpoints.get(key)

    def get_secret(self, key: ResourceKey) -> Optional[KubernetesObject]:
        return self.secrets.get(key)

    def get_ingress(self, key: ResourceKey) -> Optional[Ingress]:
        return self.ingress_map.get(key)

    def ingresses(self) -> List[Ingress]:
        return [ self.ingress_map[key] for key in sorted(self.ingress_map.keys()) ]

    def counts(self) -> Dict[str, int]:
        return {
            'services': len(self.services),
            'endpoints': len(self.endpoints),
            'secrets': len(self.secrets),
            'ingresses': len(self.ingress_map),
        }


class ResourceCache:
    """
    The thread-safe store of everything the builder reads.

    Writers never modify a published snapshot: every write builds new tables
    and swaps the snapshot reference under the lock, so a reader holding a
    snapshot sees exactly one generation no matter what happens meanwhile.
    Listeners are called, outside the lock, after every write that changed
    something.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self._lock = threading.Lock()
        self._snapshot = CacheSnapshot()
        self._listeners: List[CacheListener] = []

        self.reset_stats()

        self.logger.debug("ResourceCache initialized")

    def reset_stats(self) -> None:
        self.writes = 0
        self.noop_writes = 0

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    def snapshot(self) -> CacheSnapshot:
        # Reading a single attribute is atomic; no lock needed.
        return self._snapshot

    def add_listener(self, listener: CacheListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: CacheListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _table_for(self, kind: str) -> Optional[str]:
        table = CACHED_KINDS.get(kind)

        if not table:
            self.logger.debug(f"CACHE: ignoring unsupported kind {kind}")

        return table

    def _entry_for(self, obj: CacheEntry) -> Optional[Tuple[str, CacheEntry]]:
        # Ingresses arrive already converted by the fetcher.
        if isinstance(obj, Ingress):
            return 'ingresses', obj

        table = self._table_for(obj.kind)

        if not table:
            return None

        if table == 'ingresses':
            self.logger.debug(f"CACHE: ignoring unconverted Ingress {obj.key}")
            return None

        return table, obj

    def update(self, upserts: Iterable[CacheEntry] = (),
               deletes: Iterable[CacheDeletion] = ()) -> int:
        """
        Apply a batch of upserts and deletes atomically. Returns the
        generation after the write.
        """

        entries = [ entry for entry in (self._entry_for(obj) for obj in upserts) if entry ]
        removals = [ (table, key) for table, key in
                     ((self._table_for(kind), key) for kind, key in deletes) if table ]

        with self._lock:
            current = self._snapshot
            tables = self._tables(current)
            changed = False

            for table, entry in entries:
                key = entry.key

                if tables[table].get(key) != entry:
                    self.logger.debug(f"CACHE: set {table} {key}")
                    tables[table][key] = entry
                    changed = True

            for table, key in removals:
                if key in tables[table]:
                    self.logger.debug(f"CACHE: delete {table} {key}")
                    del tables[table][key]
                    changed = True

            if not changed:
                self.noop_writes += 1
                return current.generation

            generation = self._publish(current, tables)

        self._notify(generation)
        return generation

    def replace(self, objects: Iterable[CacheEntry]) -> int:
        """
        Replace the entire contents of the cache, as after a full resync.
        Returns the generation after the write.
        """

        tables: Dict[str, Dict[ResourceKey, CacheEntry]] = { table: {} for table in CACHED_KINDS.values() }

        for obj in objects:
            entry = self._entry_for(obj)

            if entry:
                table, value = entry
                tables[table][value.key] = value

        with self._lock:
            current = self._snapshot

            if tables == self._tables(current):
                self.noop_writes += 1
                return current.generation

            generation = self._publish(current, tables)

        self._notify(generation)
        return generation

    @staticmethod
    def _tables(snapshot: CacheSnapshot) -> Dict[str, Dict[ResourceKey, CacheEntry]]:
        return {
            'services': dict(snapshot.services),
            'endpoints': dict(snapshot.endpoints),
            'secrets': dict(snapshot.secrets),
            'ingresses': dict(snapshot.ingress_map),
        }

    def _publish(self, current: CacheSnapshot, tables: Dict[str, Dict[ResourceKey, CacheEntry]]) -> int:
        # Caller holds the lock.
        self._snapshot = CacheSnapshot(
            generation=current.generation + 1,
            services=types.MappingProxyType(tables['services']),
            endpoints=types.MappingProxyType(tables['endpoints']),
            secrets=types.MappingProxyType(tables['secrets']),
            ingress_map=types.MappingProxyType(tables['ingresses']),
        )

        self.writes += 1
        self.logger.debug(f"CACHE: generation {self._snapshot.generation}: {self._snapshot.counts()}")

        return self._snapshot.generation

    def _notify(self, generation: int) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            listener(generation)

    def dump(self) -> str:
        snapshot = self._snapshot
        counts = ", ".join(f"{k} {v}" for k, v in snapshot.counts().items())

        return f"CACHE: generation {snapshot.generation}: {counts}, writes {self.writes}, no-op writes {self.noop_writes}"
