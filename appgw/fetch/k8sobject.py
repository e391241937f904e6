from __future__ import annotations
from typing import Any, Dict, Iterator, Optional

import collections.abc
import dataclasses


@dataclasses.dataclass(frozen=True)
class KubernetesGVK:
    """
    Represents a Kubernetes resource type (API group, version and kind).
    """

    api_version: str
    kind: str

    @property
    def api_group(self) -> Optional[str]:
        # These are backward-indexed to support apiVersion: v1, which has a
        # version but no group.
        try:
            return self.api_version.split('/', 1)[-2]
        except IndexError:
            return None

    @property
    def version(self) -> str:
        return self.api_version.split('/', 1)[-1]

    @property
    def domain(self) -> str:
        if self.api_group:
            return f'{self.kind.lower()}.{self.api_group}'
        else:
            return self.kind.lower()


@dataclasses.dataclass(frozen=True, order=True)
class ResourceKey:
    """
    Identifies a namespaced resource (Service, Endpoints, Secret, Ingress).
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        return f'{self.namespace}/{self.name}'


class KubernetesObject (collections.abc.Mapping):
    """
    Represents a raw object from Kubernetes.
    """

    # Manifests applied without a namespace land here, same as kubectl.
    DEFAULT_NAMESPACE = 'default'

    def __init__(self, delegate: Dict[str, Any]) -> None:
        self.delegate = delegate

        try:
            self.gvk
            self.name
        except (KeyError, TypeError):
            raise ValueError('delegate is not a valid Kubernetes object')

    def __getitem__(self, key: str) -> Any:
        return self.delegate[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.delegate)

    def __len__(self) -> int:
        return len(self.delegate)

    def __repr__(self) -> str:
        return f'<KubernetesObject {self.gvk.domain} {self.key}>'

    @property
    def gvk(self) -> KubernetesGVK:
        return KubernetesGVK(self['apiVersion'], self['kind'])

    @property
    def kind(self) -> str:
        return self.gvk.kind

    @property
    def metadata(self) -> Dict[str, Any]:
        return self['metadata']

    @property
    def namespace(self) -> str:
        return self.metadata.get('namespace') or self.DEFAULT_NAMESPACE

    @property
    def name(self) -> str:
        return self.metadata['name']

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.namespace, self.name)

    @property
    def generation(self) -> int:
        return self.metadata.get('generation', 1)

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.get('annotations') or {}

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.get('labels') or {}

    @property
    def spec(self) -> Dict[str, Any]:
        return self.get('spec') or {}

    @property
    def status(self) -> Dict[str, Any]:
        return self.get('status') or {}
