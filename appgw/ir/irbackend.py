from typing import Any, Dict, List, Optional, Tuple

import dataclasses
import logging

from ..fetch.cache import CacheSnapshot
from ..fetch.ingress import Ingress, IngressBackend
from ..fetch.k8sobject import KubernetesObject, ResourceKey

from .errors import BuildErrors, ErrorKind
from .irannotations import IngressAnnotations


@dataclasses.dataclass(frozen=True)
class BackendRef:
    """
    One place an Ingress points at a backend: a path of a rule, or the
    Ingress's default backend (rule_index and path_index both -1).
    """

    ingress: Ingress
    annotations: IngressAnnotations
    backend: IngressBackend
    host: str = ''
    path: str = ''
    path_type: str = 'ImplementationSpecific'
    rule_index: int = -1
    path_index: int = -1

    @property
    def is_default(self) -> bool:
        return self.rule_index < 0

    @property
    def rkey(self) -> str:
        return str(self.ingress.key)

    @property
    def service_key(self) -> ResourceKey:
        return ResourceKey(self.ingress.namespace, self.backend.service_name)

    def __str__(self) -> str:
        if self.is_default:
            return f"{self.rkey} default backend {self.backend}"

        return f"{self.rkey} rule {self.rule_index} path {self.path_index} ({self.host or '*'}{self.path}) backend {self.backend}"


@dataclasses.dataclass(frozen=True)
class ResolvedBackend:
    service_key: ResourceKey
    service_port: int
    service_port_name: Optional[str]
    target_port: int
    protocol: str
    addresses: Tuple[str, ...]
    ref: BackendRef

    @property
    def port_label(self) -> str:
        # What the backend asked for, as it asked for it.
        return self.ref.backend.port


def collect_backend_refs(ingress: Ingress, annotations: IngressAnnotations,
                         errors: BuildErrors) -> List[BackendRef]:
    """
    Flatten an Ingress into its BackendRefs, in declared order, default
    backend first. Paths without a usable backend are reported and skipped.
    """

    refs: List[BackendRef] = []
    rkey = str(ingress.key)

    if ingress.default_backend:
        refs.append(BackendRef(ingress=ingress, annotations=annotations, backend=ingress.default_backend))

    for rule_index, rule in enumerate(ingress.rules):
        for path_index, path in enumerate(rule.paths):
            if not path.backend:
                errors.post_error(f"rule {rule_index} path {path_index} ({rule.host or '*'}{path.path}): no service backend with a port",
                                  rkey=rkey, kind=ErrorKind.INVALID_BACKEND)
                continue

            refs.append(BackendRef(
                ingress=ingress,
                annotations=annotations,
                backend=path.backend,
                host=rule.host,
                path=path.path,
                path_type=path.path_type,
                rule_index=rule_index,
                path_index=path_index,
            ))

    return refs


class BackendResolver:
    """
    Resolves BackendRefs against a cache snapshot: finds the Service port the
    backend names, works out the target port, and collects the ready
    endpoint addresses.
    """

    def __init__(self, snapshot: CacheSnapshot, errors: BuildErrors, logger: logging.Logger) -> None:
        self.snapshot = snapshot
        self.errors = errors
        self.logger = logger

    def resolve(self, ref: BackendRef) -> Optional[ResolvedBackend]:
        service = self.snapshot.get_service(ref.service_key)

        if not service:
            self.errors.post_error(f"{ref}: service {ref.service_key} not found",
                                   rkey=ref.rkey, kind=ErrorKind.SERVICE_NOT_FOUND)
            return None

        svc_port = self.find_service_port(service, ref.backend)

        if not svc_port:
            self.errors.post_error(f"{ref}: service {ref.service_key} has no port {ref.backend.port}",
                                   rkey=ref.rkey, kind=ErrorKind.PORT_NOT_FOUND)
            return None

        protocol = (svc_port.get('protocol') or 'TCP').upper()

        if protocol != 'TCP':
            self.errors.post_error(f"{ref}: service {ref.service_key} port {ref.backend.port} is {protocol}, only TCP is supported",
                                   rkey=ref.rkey, kind=ErrorKind.UNSUPPORTED_PROTOCOL)
            return None

        port_number = int(svc_port['port'])
        port_name = svc_port.get('name') or None

        addresses, endpoint_port = self.endpoint_addresses(ref.service_key, port_name)

        # The target port is the one the endpoints report for this service
        # port. Failing that, a numeric targetPort; failing that, the service
        # port itself.
        target_port = endpoint_port
        target = svc_port.get('targetPort')

        if target_port is None:
            if isinstance(target, int) and not isinstance(target, bool):
                target_port = target
            else:
                target_port = port_number

        self.logger.debug(f"{ref}: {ref.service_key} port {port_number} -> target {target_port}, {len(addresses)} addresses")

        return ResolvedBackend(
            service_key=ref.service_key,
            service_port=port_number,
            service_port_name=port_name,
            target_port=target_port,
            protocol=protocol,
            addresses=addresses,
            ref=ref,
        )

    @staticmethod
    def find_service_port(service: KubernetesObject, backend: IngressBackend) -> Optional[Dict[str, Any]]:
        # A number matches only 'port'; a name matches only 'name'.
        for svc_port in service.spec.get('ports') or []:
            if backend.port_number is not None:
                if svc_port.get('port') == backend.port_number:
                    return svc_port
            elif backend.port_name and svc_port.get('name') == backend.port_name:
                return svc_port

        return None

    def endpoint_addresses(self, key: ResourceKey, port_name: Optional[str]) -> Tuple[Tuple[str, ...], Optional[int]]:
        """
        Returns the sorted ready addresses that serve the given service port,
        and the endpoint port number if the endpoints name one.
        """

        endpoints = self.snapshot.get_endpoints(key)

        if not endpoints:
            self.logger.debug(f"{key}: no endpoints at all")
            return (), None

        addresses = set()
        endpoint_port: Optional[int] = None

        for subset in endpoints.get('subsets') or []:
            ips = [ a.get('ip') for a in subset.get('addresses') or [] if a.get('ip') ]

            if not ips:
                continue

            ports = [ p for p in subset.get('ports') or []
                      if (p.get('protocol') or 'TCP').upper() == 'TCP' and p.get('port') is not None ]

            if not subset.get('ports'):
                # No ports at all: every address serves every port.
                addresses.update(ips)
                continue

            if len(ports) == 1:
                match = ports[0]
            else:
                match = next((p for p in ports if port_name and p.get('name') == port_name), None)

            if not match:
                continue

            addresses.update(ips)

            if endpoint_port is None:
                endpoint_port = int(match['port'])

        return tuple(sorted(addresses)), endpoint_port
