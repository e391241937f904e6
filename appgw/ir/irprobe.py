from typing import Dict, List, Tuple

import logging

from ..config import Config

from .document import Probe
from .errors import BuildErrors
from .irbackend import ResolvedBackend
from .naming import DEFAULT_PROBE, NameRegistry, probe_name

ProbeIdentity = Tuple[str, str]


def probe_host(backend: ResolvedBackend, fallback: str) -> str:
    annotations = backend.ref.annotations

    if annotations.probe_host:
        return annotations.probe_host

    host = backend.ref.host

    # A wildcard host can't be sent as a Host header.
    if not host or host.startswith('*'):
        return fallback

    return host


def probe_path(backend: ResolvedBackend) -> str:
    annotations = backend.ref.annotations

    if annotations.probe_path:
        return annotations.probe_path

    path = backend.ref.path.rstrip('*')

    return path or '/'


class ProbeSynthesizer:
    """
    Works out the health probe for each resolved backend. Probes are
    identified by (host, path): every backend that ends up probing the same
    place shares one probe, and the settings of the first backend to get
    there win.
    """

    def __init__(self, config: Config, errors: BuildErrors, logger: logging.Logger) -> None:
        self.config = config
        self.errors = errors
        self.logger = logger

        self.probes: Dict[ProbeIdentity, Probe] = {}
        self.registry = NameRegistry('probe', logger)

        default = self.default_probe(config)
        self.probes[default.identity] = default
        self.registry.reserve(default.name, default.identity)

    @staticmethod
    def default_probe(config: Config) -> Probe:
        return Probe(name=DEFAULT_PROBE, host=config.fallback_host, path='/')

    def probe_for(self, backend: ResolvedBackend) -> Probe:
        host = probe_host(backend, self.config.fallback_host)
        path = probe_path(backend)
        identity = (host.lower(), path)

        probe = self.probes.get(identity)

        if probe:
            self.logger.debug(f"{backend.ref}: sharing probe {probe.name}")
            return probe

        ref = backend.ref
        annotations = ref.annotations

        name = self.registry.claim(
            probe_name(ref.ingress.namespace, ref.ingress.name, ref.backend.service_name, backend.port_label),
            identity
        )

        probe = Probe(
            name=name,
            protocol=annotations.backend_protocol,
            host=host,
            path=path,
            interval=annotations.probe_interval or 30,
            timeout=annotations.probe_timeout or 30,
            unhealthy_threshold=annotations.probe_unhealthy_threshold or 3,
            match_status_codes=annotations.probe_status_codes,
        )

        self.logger.debug(f"{ref}: new probe {name} for {host}{path}")
        self.probes[identity] = probe

        return probe

    def collection(self) -> List[Probe]:
        return list(self.probes.values())
