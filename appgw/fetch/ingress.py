from __future__ import annotations
from typing import Any, Dict, FrozenSet, Optional, Tuple

import dataclasses

from .k8sobject import KubernetesGVK, KubernetesObject, ResourceKey

# Every Ingress API version we understand. They all collapse into the same
# Ingress dataclass below.
INGRESS_KINDS: FrozenSet[KubernetesGVK] = frozenset([
    KubernetesGVK('extensions/v1beta1', 'Ingress'),
    KubernetesGVK('networking.k8s.io/v1beta1', 'Ingress'),
    KubernetesGVK('networking.k8s.io/v1', 'Ingress'),
])

PATH_TYPES = ('Exact', 'Prefix', 'ImplementationSpecific')


@dataclasses.dataclass(frozen=True)
class IngressBackend:
    """
    A reference to a Service port, either by number or by name (never both).
    """

    service_name: str
    port_number: Optional[int] = None
    port_name: Optional[str] = None

    @property
    def port(self) -> str:
        if self.port_number is not None:
            return str(self.port_number)

        return self.port_name or ''

    def __str__(self) -> str:
        return f'{self.service_name}:{self.port}'

    @classmethod
    def from_spec(cls, spec: Optional[Dict[str, Any]]) -> Optional[IngressBackend]:
        if not spec:
            return None

        port_number: Optional[int] = None
        port_name: Optional[str] = None

        service = spec.get('service')

        if service is not None:
            # networking.k8s.io/v1: service.name plus service.port.{number,name}
            service_name = service.get('name')
            port = service.get('port') or {}
            port_number = port.get('number')
            port_name = port.get('name')

            # A number that isn't an int leaves the backend unusable.
            if port_number is not None and (isinstance(port_number, bool) or not isinstance(port_number, int)):
                return None
        else:
            # v1beta1: serviceName plus an IntOrString servicePort. A quoted
            # number is a name, exactly as Kubernetes treats it.
            service_name = spec.get('serviceName')
            port = spec.get('servicePort')

            if isinstance(port, bool):
                port = None

            if isinstance(port, int):
                port_number = port
            elif port is not None:
                port_name = str(port)

        if not service_name:
            return None

        if port_number is not None:
            return cls(service_name, port_number=port_number)

        if port_name:
            return cls(service_name, port_name=port_name)

        return None


@dataclasses.dataclass(frozen=True)
class IngressPath:
    path: str
    path_type: str
    backend: Optional[IngressBackend]


@dataclasses.dataclass(frozen=True)
class IngressRule:
    host: str
    paths: Tuple[IngressPath, ...]


@dataclasses.dataclass(frozen=True)
class IngressTLS:
    hosts: Tuple[str, ...]
    secret_name: Optional[str]


@dataclasses.dataclass(frozen=True)
class Ingress:
    """
    The version-independent view of a Kubernetes Ingress that the builder
    works from.
    """

    namespace: str
    name: str
    annotations: Dict[str, str] = dataclasses.field(default_factory=dict, hash=False)
    rules: Tuple[IngressRule, ...] = ()
    tls: Tuple[IngressTLS, ...] = ()
    default_backend: Optional[IngressBackend] = None
    ingress_class: Optional[str] = None

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.namespace, self.name)

    @property
    def hosts(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(rule.host for rule in self.rules))

    def __str__(self) -> str:
        return f'Ingress {self.key}'

    @classmethod
    def from_kubernetes_object(cls, obj: KubernetesObject) -> Ingress:
        if obj.gvk not in INGRESS_KINDS:
            raise ValueError(f'{obj.gvk.api_version} {obj.kind} is not an Ingress')

        spec = obj.spec

        rules = []

        for rule in spec.get('rules') or []:
            http = rule.get('http') or {}
            paths = []

            for path in http.get('paths') or []:
                path_type = path.get('pathType') or 'ImplementationSpecific'

                if path_type not in PATH_TYPES:
                    path_type = 'ImplementationSpecific'

                paths.append(IngressPath(
                    path=path.get('path') or '',
                    path_type=path_type,
                    backend=IngressBackend.from_spec(path.get('backend')),
                ))

            rules.append(IngressRule(host=(rule.get('host') or '').lower(), paths=tuple(paths)))

        tls = tuple(
            IngressTLS(
                hosts=tuple((host or '').lower() for host in (entry.get('hosts') or [])),
                secret_name=entry.get('secretName'),
            )
            for entry in spec.get('tls') or []
        )

        # spec.backend is the pre-v1 name of spec.defaultBackend.
        default_backend = IngressBackend.from_spec(spec.get('defaultBackend') or spec.get('backend'))

        ingress_class = obj.annotations.get('kubernetes.io/ingress.class', spec.get('ingressClassName'))

        return cls(
            namespace=obj.namespace,
            name=obj.name,
            annotations=dict(obj.annotations),
            rules=tuple(rules),
            tls=tls,
            default_backend=default_backend,
            ingress_class=ingress_class,
        )
