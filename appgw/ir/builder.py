# Copyright 2018 Datawire. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License

from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import dataclasses
import logging

from ..config import Config
from ..fetch.cache import CacheSnapshot
from ..fetch.ingress import Ingress
from ..fetch.k8sobject import ResourceKey

from .document import ConfigurationDocument
from .errors import BuildError, BuildErrors
from .irannotations import IngressAnnotations
from .irbackend import BackendResolver, collect_backend_refs
from .irextraneous import preserve_extraneous
from .irlistener import BackendTarget, ListenerSynthesizer, RoutedPath
from .irpool import PoolSynthesizer
from .irprobe import ProbeSynthesizer


@dataclasses.dataclass(frozen=True)
class BuildResult:
    document: ConfigurationDocument
    errors: Tuple[BuildError, ...] = ()

    def __iter__(self) -> Iterator:
        # So that "document, errors = builder.build(...)" works.
        return iter((self.document, self.errors))

    @property
    def ok(self) -> bool:
        return not any(not e.is_warning for e in self.errors)


class ConfigBuilder:
    """
    Turns a list of Ingresses and a cache snapshot into a gateway
    ConfigurationDocument.

    A build never modifies the snapshot and never raises for bad input:
    anything that can't be routed is recorded as a BuildError and left out,
    and everything else is built anyway. The same input always produces the
    same document, names included.
    """

    def __init__(self, config: Optional[Config] = None, logger: Optional[logging.Logger] = None) -> None:
        self.config = config or Config()
        self.logger = logger or logging.getLogger("appgw.builder")

    def build(self, ingresses: Iterable[Ingress], snapshot: CacheSnapshot,
              existing: Optional[ConfigurationDocument] = None) -> BuildResult:
        errors = BuildErrors(self.logger)

        resolver = BackendResolver(snapshot, errors, self.logger)
        probes = ProbeSynthesizer(self.config, errors, self.logger)
        pools = PoolSynthesizer(self.config, errors, self.logger)
        listeners = ListenerSynthesizer(self.config, snapshot, errors, self.logger)

        routed: List[Tuple[Ingress, bool, Sequence[RoutedPath]]] = []

        for ingress in self.ordered(ingresses, errors):
            annotations = IngressAnnotations.from_ingress(ingress, errors, prefix=self.config.annotation_prefix)
            paths: List[RoutedPath] = []

            for ref in collect_backend_refs(ingress, annotations, errors):
                backend = resolver.resolve(ref)

                if not backend:
                    continue

                probe = probes.probe_for(backend)
                pool = pools.pool_for(backend)
                settings = pools.settings_for(backend, probe)

                paths.append(RoutedPath(ref, BackendTarget(pool.name, settings.name)))

            routed.append((ingress, annotations.ssl_redirect, paths))

        fallback = BackendTarget(pools.default_pool.name, pools.default_settings.name)
        frontend = listeners.synthesize(routed, fallback)

        document = ConfigurationDocument(
            probes=tuple(probes.collection()),
            backend_address_pools=tuple(pools.pool_collection()),
            backend_http_settings=tuple(pools.settings_collection()),
            **{ collection: tuple(entities) for collection, entities in frontend.items() }
        )

        if existing:
            document = preserve_extraneous(document, existing, self.config.name_prefix, errors)

        document.validate()

        self.logger.debug(f"build: {len(routed)} ingresses, {len(errors)} errors, "
                          f"{len(document.http_listeners)} listeners, {len(document.probes)} probes")

        return BuildResult(document, tuple(errors))

    def ordered(self, ingresses: Iterable[Ingress], errors: BuildErrors) -> List[Ingress]:
        by_key: Dict[ResourceKey, Ingress] = {}

        for ingress in ingresses:
            if ingress.key in by_key:
                errors.post_notice(f"ignoring duplicate {ingress}", rkey=str(ingress.key))
                continue

            by_key[ingress.key] = ingress

        return [ by_key[key] for key in sorted(by_key.keys()) ]
