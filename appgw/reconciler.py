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

from typing import Any, Optional, Protocol, Tuple

import logging
import queue
import threading

from .config import Config
from .fetch.cache import ResourceCache
from .ir.builder import BuildResult, ConfigBuilder
from .ir.document import ConfigurationDocument
from .ir.irextraneous import canonical_managed


class GatewayClient (Protocol):
    """
    The gateway's control plane, as far as we care: read the current
    configuration, and replace it with a new one.
    """

    def fetch(self) -> Optional[ConfigurationDocument]:
        ...

    def apply(self, document: ConfigurationDocument) -> None:
        ...


class Reconciler (threading.Thread):
    """
    Keeps the gateway in step with the cache. Every cache change queues an
    event; the reconciler thread drains the queue, builds once for however
    many events piled up, and applies the result if it differs from what
    the gateway already has. With nothing queued for resync_period seconds
    it reconciles anyway.

    Only one build runs at a time, whether it comes from the thread or from
    a direct call to reconcile().
    """

    def __init__(self, cache: ResourceCache, client: GatewayClient,
                 builder: Optional[ConfigBuilder] = None, config: Optional[Config] = None,
                 logger: Optional[logging.Logger] = None, resync_period: Optional[float] = None) -> None:
        super().__init__(name="Reconciler", daemon=True)

        self.config = config or Config()
        self.logger = logger or logging.getLogger("appgw.reconciler")
        self.cache = cache
        self.client = client
        self.builder = builder or ConfigBuilder(self.config, logging.getLogger("appgw.builder"))
        self.resync_period = resync_period if resync_period is not None else self.config.resync_period

        self.events: queue.Queue = queue.Queue()
        self.stopping = threading.Event()
        self.build_lock = threading.Lock()

        self.last_applied: Optional[str] = None
        self.last_result: Optional[BuildResult] = None

        self.reconciles = 0
        self.applies = 0
        self.failures = 0

    def post(self, cmd: str, arg: Any = None) -> None:
        if self.stopping.is_set():
            self.logger.debug(f"shutting down, dropping event {cmd}")
            return

        self.events.put((cmd, arg))

    def on_cache_change(self, generation: int) -> None:
        self.post('CACHE', generation)

    def start(self) -> None:
        self.cache.add_listener(self.on_cache_change)
        super().start()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        self.logger.info("reconciler shutting down")

        self.stopping.set()
        self.cache.remove_listener(self.on_cache_change)

        # Wake the thread up if it's waiting on the queue.
        self.events.put(None)

        if self.is_alive():
            self.join(timeout)

    def next_event(self) -> Optional[Tuple[str, Any]]:
        try:
            return self.events.get(timeout=self.resync_period)
        except queue.Empty:
            return ('RESYNC', None)

    def run(self) -> None:
        self.logger.info(f"starting reconciler, resync every {self.resync_period}s")

        while not self.stopping.is_set():
            event = self.next_event()

            if event is None:
                break

            cmd, arg = event
            coalesced = 1

            # Everything that's queued up now is satisfied by one build.
            while True:
                try:
                    event = self.events.get_nowait()
                except queue.Empty:
                    break

                if event is None:
                    self.stopping.set()
                    break

                coalesced += 1

            if self.stopping.is_set():
                break

            self.logger.debug(f"reconcile for {cmd} {arg} ({coalesced} events)")

            try:
                self.reconcile()
            except Exception as e:
                self.failures += 1
                self.logger.error("could not reconcile: %s" % e)
                self.logger.exception(e)

        self.logger.info("reconciler stopped")

    def reconcile(self) -> BuildResult:
        """
        Build from the current cache snapshot and apply the result if it's
        new. Exceptions from the client or the builder propagate.
        """

        with self.build_lock:
            self.reconciles += 1

            snapshot = self.cache.snapshot()
            existing = self.client.fetch()

            result = self.builder.build(snapshot.ingresses(), snapshot, existing=existing)
            self.last_result = result

            serialized = result.document.as_json(pretty=False)

            # If we can see what the gateway has, compare against that, so
            # that drift gets repaired; otherwise compare against what we
            # sent last. Managed entities compare in canonical form.
            if existing is not None:
                current = canonical_managed(existing, self.config.name_prefix)
                unchanged = (current.as_json(pretty=False) == serialized)
            else:
                unchanged = (serialized == self.last_applied)

            if unchanged:
                self.logger.debug(f"generation {snapshot.generation}: configuration unchanged, not applying")
                return result

            self.logger.info(f"generation {snapshot.generation}: applying configuration ({len(result.errors)} errors)")

            self.client.apply(result.document)

            self.last_applied = serialized
            self.applies += 1

            return result
