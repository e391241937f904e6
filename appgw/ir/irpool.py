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

from typing import Dict, List, Tuple

import dataclasses
import logging

from ..config import Config

from .document import BackendAddressPool, BackendHTTPSettings, Probe
from .errors import BuildErrors
from .irbackend import ResolvedBackend
from .naming import DEFAULT_POOL, DEFAULT_PROBE, DEFAULT_SETTINGS, NameRegistry, pool_name, settings_name


def _settings_identity(settings: BackendHTTPSettings) -> Tuple:
    # Everything but the name.
    return dataclasses.astuple(dataclasses.replace(settings, name='', raw=None))


class PoolSynthesizer:
    """
    Builds backend address pools and HTTP settings. Both are deduplicated by
    content: backends with the same addresses share a pool, and backends with
    the same port, protocol, probe and knobs share settings. Names come from
    the first backend to need each one.
    """

    def __init__(self, config: Config, errors: BuildErrors, logger: logging.Logger) -> None:
        self.config = config
        self.errors = errors
        self.logger = logger

        self.pools: Dict[Tuple[str, ...], BackendAddressPool] = {}
        self.settings: Dict[Tuple, BackendHTTPSettings] = {}

        self.pool_names = NameRegistry('pool', logger)
        self.settings_names = NameRegistry('settings', logger)

        default_pool = BackendAddressPool(name=DEFAULT_POOL, addresses=())
        self.pools[default_pool.addresses] = default_pool
        self.pool_names.reserve(default_pool.name, default_pool.addresses)

        default_settings = BackendHTTPSettings(name=DEFAULT_SETTINGS, port=80, protocol='Http', probe=DEFAULT_PROBE)
        identity = _settings_identity(default_settings)
        self.settings[identity] = default_settings
        self.settings_names.reserve(default_settings.name, identity)

    @property
    def default_pool(self) -> BackendAddressPool:
        return self.pools[()]

    @property
    def default_settings(self) -> BackendHTTPSettings:
        return next(iter(self.settings.values()))

    def pool_for(self, backend: ResolvedBackend) -> BackendAddressPool:
        # A backend with no ready addresses lands in the (empty) default pool.
        pool = self.pools.get(backend.addresses)

        if pool:
            return pool

        key = backend.service_key
        name = self.pool_names.claim(pool_name(key.namespace, key.name, backend.port_label), backend.addresses)

        pool = BackendAddressPool(name=name, addresses=backend.addresses)
        self.pools[backend.addresses] = pool

        self.logger.debug(f"{backend.ref}: new pool {name} with {len(backend.addresses)} addresses")
        return pool

    def settings_for(self, backend: ResolvedBackend, probe: Probe) -> BackendHTTPSettings:
        annotations = backend.ref.annotations

        wanted = BackendHTTPSettings(
            name='',
            port=backend.target_port,
            protocol=annotations.backend_protocol,
            probe=probe.name,
            request_timeout=annotations.request_timeout,
            cookie_based_affinity=annotations.cookie_based_affinity,
            connection_draining=annotations.connection_draining,
            connection_draining_timeout=annotations.connection_draining_timeout,
            host_name=annotations.backend_hostname,
            path=annotations.backend_path_prefix,
        )

        identity = _settings_identity(wanted)
        settings = self.settings.get(identity)

        if settings:
            return settings

        key = backend.service_key
        name = self.settings_names.claim(settings_name(key.namespace, key.name, backend.port_label), identity)

        settings = dataclasses.replace(wanted, name=name)
        self.settings[identity] = settings

        self.logger.debug(f"{backend.ref}: new settings {name} for port {settings.port}")
        return settings

    def pool_collection(self) -> List[BackendAddressPool]:
        return list(self.pools.values())

    def settings_collection(self) -> List[BackendHTTPSettings]:
        return list(self.settings.values())
