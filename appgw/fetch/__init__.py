from .k8sobject import KubernetesGVK, KubernetesObject, ResourceKey
from .ingress import Ingress, IngressBackend, IngressPath, IngressRule, IngressTLS
from .cache import CacheSnapshot, ResourceCache
from .fetcher import ResourceFetcher
