from typing import Any, Dict, List, Optional

import logging
import os

import orjson
import yaml

from ..config import Config
from ..utils import parse_json, parse_yaml

from .cache import CACHED_KINDS, CacheDeletion, CacheEntry, ResourceCache
from .ingress import INGRESS_KINDS, Ingress
from .k8sobject import KubernetesObject

# Keys in a watch snapshot, processed in this order so that the things an
# Ingress refers to are loaded before the Ingress itself.
WATT_KEYS = [ 'service', 'endpoints', 'secret', 'ingresses' ]


class ResourceFetcher:
    """
    Loads Kubernetes objects from YAML manifests or JSON watch snapshots
    into a ResourceCache. Objects accumulate until finalize(), which writes
    them to the cache in one batch.
    """

    pending: List[CacheEntry]
    deletes: List[CacheDeletion]
    errors: List[str]

    def __init__(self, logger: logging.Logger, config: Config, cache: ResourceCache) -> None:
        self.logger = logger
        self.config = config
        self.cache = cache

        self.pending = []
        self.deletes = []
        self.errors = []

        # A watch snapshot is the whole world, so it replaces the cache
        # rather than updating it.
        self.replace_on_finalize = False

        self.filename: Optional[str] = None

    @property
    def location(self) -> str:
        return self.filename or "-input-"

    def post_error(self, msg: str) -> None:
        self.errors.append(msg)
        self.logger.error(msg)

    def load_from_filesystem(self, config_dir_path: str, recurse: bool=False,
                             finalize: bool=True) -> None:
        inputs: List[str] = []

        if os.path.isdir(config_dir_path):
            dirs = [ config_dir_path ]

            while dirs:
                dirpath = dirs.pop(0)

                for filename in sorted(os.listdir(dirpath)):
                    filepath = os.path.join(dirpath, filename)

                    if recurse and os.path.isdir(filepath):
                        dirs.append(filepath)
                        continue

                    if not os.path.isfile(filepath):
                        continue

                    if not filename.lower().endswith(('.yaml', '.yml')):
                        continue

                    inputs.append(filepath)

        elif os.path.isfile(config_dir_path):
            inputs.append(config_dir_path)
        else:
            self.logger.debug("no directory/file at path %s, doing nothing" % config_dir_path)

        for filepath in inputs:
            self.logger.debug("reading %s" % filepath)

            try:
                with open(filepath, "r") as f:
                    serialization = f.read()

                self.parse_yaml(serialization, filename=os.path.basename(filepath), finalize=False)
            except IOError as e:
                self.post_error("could not read YAML from %s: %s" % (filepath, e))

        if finalize:
            self.finalize()

    def parse_yaml(self, serialization: str, filename: Optional[str] = None,
                   finalize: bool = True) -> None:
        self.filename = filename

        try:
            for obj in parse_yaml(serialization):
                # Empty documents show up as None.
                if obj:
                    self.handle_k8s(obj)
        except yaml.error.YAMLError as e:
            self.post_error("%s: could not parse YAML: %s" % (self.location, e))

        if finalize:
            self.finalize()

    def parse_watt(self, serialization: str, finalize: bool=True) -> None:
        self.filename = None
        self.replace_on_finalize = True

        try:
            watt_dict = parse_json(serialization)
        except orjson.JSONDecodeError as e:
            self.post_error("%s: could not parse watch snapshot: %s" % (self.location, e))
            return

        watt_k8s: Dict[str, Any] = watt_dict.get('Kubernetes') or {}

        # Known keys go first, in dependency order; anything else is handled
        # afterward so that unsupported kinds at least get logged.
        for key in dict.fromkeys(WATT_KEYS + list(watt_k8s.keys())):
            for obj in watt_k8s.get(key) or []:
                self.handle_k8s(obj)

        if finalize:
            self.finalize()

    def handle_k8s(self, raw_obj: Dict[str, Any]) -> None:
        try:
            obj = KubernetesObject(raw_obj)
        except ValueError:
            # No kind, API version, or name: nothing we can do with it.
            self.post_error(f"{self.location}: skipping invalid Kubernetes object")
            return

        if obj.kind not in CACHED_KINDS:
            self.logger.debug(f"{self.location}: skipping K8s {obj.gvk.domain} {obj.key}")
            return

        if obj.kind == 'Ingress':
            if not self.config.admit_ingress(obj):
                return
        elif not self.config.admit_namespace(obj.namespace):
            self.logger.debug(f"{self.location}: skipping {obj.kind} {obj.key} outside {self.config.watch_namespace}")
            return

        if self.config.log_resources:
            self.logger.info(f"{self.location}: loaded {obj.kind} {obj.key}")

        if obj.kind == 'Ingress':
            self.handle_ingress(obj)
        else:
            self.pending.append(obj)

    def handle_ingress(self, obj: KubernetesObject) -> None:
        if obj.gvk not in INGRESS_KINDS:
            self.logger.debug(f"{self.location}: skipping unsupported {obj.gvk.api_version} Ingress {obj.key}")
            return

        try:
            ingress = Ingress.from_kubernetes_object(obj)
        except (ValueError, TypeError, AttributeError) as e:
            self.post_error(f"{self.location}: skipping invalid Ingress {obj.key}: {e}")
            return

        self.pending.append(ingress)

    def handle_delete(self, kind: str, raw_obj: Dict[str, Any]) -> None:
        try:
            obj = KubernetesObject(raw_obj)
        except ValueError:
            self.post_error(f"{self.location}: cannot delete invalid Kubernetes object")
            return

        self.deletes.append((kind, obj.key))

    def finalize(self) -> int:
        """
        Write everything accumulated so far to the cache. Returns the cache
        generation afterward.
        """

        pending, deletes = self.pending, self.deletes
        self.pending, self.deletes = [], []

        if self.replace_on_finalize:
            self.replace_on_finalize = False
            generation = self.cache.replace(pending)
        else:
            generation = self.cache.update(pending, deletes)

        self.logger.debug(f"fetcher: wrote {len(pending)} objects, {len(deletes)} deletions, generation {generation}")
        return generation
