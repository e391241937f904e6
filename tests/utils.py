import logging
from typing import List, Optional, Tuple

from appgw import Config, ConfigBuilder, ResourceCache, ResourceFetcher
from appgw.fetch.ingress import Ingress
from appgw.fetch.k8sobject import KubernetesObject
from appgw.ir.builder import BuildResult
from appgw.ir.document import ConfigurationDocument
from appgw.utils import parse_yaml

logger = logging.getLogger("appgw")

NAMESPACE = "test-ingress-controller"
INGRESS_NAME = "websocket-ingress"

HOST = "foo.baz"
OTHER_HOST = "bar.baz"


def service_manifest(name="web", namespace=NAMESPACE):
    return f"""
---
apiVersion: v1
kind: Service
metadata:
  name: {name}
  namespace: {namespace}
spec:
  selector:
    app: {name}
  ports:
  - name: http
    protocol: TCP
    port: 80
    targetPort: 8181
  - name: https
    protocol: TCP
    port: 443
    targetPort: https-port
  - name: other-tcp-port
    protocol: TCP
    port: 554
    targetPort: 9554
  - name: ntp
    protocol: UDP
    port: 123
    targetPort: 123
"""


def endpoints_manifest(name="web", namespace=NAMESPACE, ip="10.9.8.7"):
    return f"""
---
apiVersion: v1
kind: Endpoints
metadata:
  name: {name}
  namespace: {namespace}
subsets:
- addresses:
  - ip: {ip}
    hostname: www.contoso.com
    nodeName: "--node-name--"
  notReadyAddresses: []
  ports: []
"""


def ingress_manifest(name=INGRESS_NAME, namespace=NAMESPACE, annotations: Optional[dict] = None,
                     tls: Optional[List[Tuple[List[str], str]]] = None):
    """
    The two-host Ingress everything else is built around: both hosts route
    /a/b/c/d/e to the "web" Service, one by port number and one by port name.
    """

    ann = { "kubernetes.io/ingress.class": "azure/application-gateway" }
    ann.update(annotations or {})

    ann_yaml = "\n".join(f'    {k}: "{v}"' for k, v in ann.items())

    tls_yaml = ""

    if tls:
        tls_yaml = "  tls:\n"

        for hosts, secret in tls:
            tls_yaml += f"  - hosts: [{', '.join(hosts)}]\n    secretName: {secret}\n"

    return f"""
---
apiVersion: extensions/v1beta1
kind: Ingress
metadata:
  name: {name}
  namespace: {namespace}
  annotations:
{ann_yaml}
spec:
{tls_yaml}  rules:
  - host: {HOST}
    http:
      paths:
      - path: /a/b/c/d/e
        backend:
          serviceName: web
          servicePort: 80
  - host: {OTHER_HOST}
    http:
      paths:
      - path: /a/b/c/d/e
        backend:
          serviceName: web
          servicePort: https
"""


def tls_secret_manifest(name="foo-tls", namespace=NAMESPACE, crt="LS0tY2VydA==", key="LS0ta2V5"):
    return f"""
---
apiVersion: v1
kind: Secret
type: kubernetes.io/tls
metadata:
  name: {name}
  namespace: {namespace}
data:
  tls.crt: {crt}
  tls.key: {key}
"""


def default_manifests() -> str:
    return service_manifest() + endpoints_manifest() + ingress_manifest()


def k8s_object_from_yaml(yaml: str) -> KubernetesObject:
    return KubernetesObject(parse_yaml(yaml)[0])


def ingress_from_yaml(yaml: str) -> Ingress:
    return Ingress.from_kubernetes_object(k8s_object_from_yaml(yaml))


def load_cache(yaml: str, config: Optional[Config] = None) -> ResourceCache:
    cache = ResourceCache(logger)
    fetcher = ResourceFetcher(logger, config or Config(), cache)
    fetcher.parse_yaml(yaml)

    return cache


def build(yaml: str, existing: Optional[ConfigurationDocument] = None,
          config: Optional[Config] = None, ingresses: Optional[List[Ingress]] = None) -> BuildResult:
    config = config or Config()
    snapshot = load_cache(yaml, config).snapshot()

    if ingresses is None:
        ingresses = snapshot.ingresses()

    return ConfigBuilder(config, logger).build(ingresses, snapshot, existing=existing)


def error_kinds(result: BuildResult) -> List[str]:
    return [ e.kind.name for e in result.errors ]
