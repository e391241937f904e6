from appgw.ir.document import HTTPListener, RequestRoutingRule
from appgw.ir.irlistener import gateway_paths

from tests.utils import (
    HOST, NAMESPACE, OTHER_HOST, build, endpoints_manifest, error_kinds, ingress_manifest, service_manifest,
    tls_secret_manifest
)

P = "appgw.ingress.kubernetes.io/"

BASE = service_manifest() + endpoints_manifest()


def listeners(result):
    return { l.name: l for l in result.document.http_listeners }


def rules(result):
    return { r.listener: r for r in result.document.request_routing_rules }


def test_default_scenario(default_result):
    document = default_result.document

    assert [ p.as_dict() for p in document.frontend_ports ] == [
        { "name": "k8s-ag-ingress-fp-80", "properties": { "port": 80 } }
    ]

    assert document.http_listeners == (
        HTTPListener(name="k8s-ag-ingress-80-fl", frontend_port="k8s-ag-ingress-fp-80", protocol="Http"),
        HTTPListener(name="k8s-ag-ingress-bar.baz-80-fl", frontend_port="k8s-ag-ingress-fp-80",
                     protocol="Http", host_name=OTHER_HOST),
        HTTPListener(name="k8s-ag-ingress-foo.baz-80-fl", frontend_port="k8s-ag-ingress-fp-80",
                     protocol="Http", host_name=HOST),
    )

    by_listener = rules(default_result)

    default_rule = by_listener["k8s-ag-ingress-80-fl"]

    assert default_rule == RequestRoutingRule(
        name="k8s-ag-ingress-80-rr", rule_type="Basic", listener="k8s-ag-ingress-80-fl",
        backend_pool="k8s-ag-ingress-defaultaddresspool", backend_settings="k8s-ag-ingress-defaulthttpsetting",
    )

    foo_rule = by_listener["k8s-ag-ingress-foo.baz-80-fl"]

    assert foo_rule.rule_type == "PathBasedRouting"
    assert foo_rule.url_path_map == "k8s-ag-ingress-foo.baz-80-url"

    url_path_map = document.get("url_path_maps", foo_rule.url_path_map)

    assert url_path_map.default_backend_pool == "k8s-ag-ingress-defaultaddresspool"
    assert len(url_path_map.path_rules) == 1

    path_rule = url_path_map.path_rules[0]

    assert path_rule.name.startswith(f"k8s-ag-ingress-{NAMESPACE}-websocket-ingress-pr-")
    assert path_rule.paths == ("/a/b/c/d/e",)
    assert path_rule.backend_pool == f"k8s-ag-ingress-{NAMESPACE}-web-80-bp"
    assert path_rule.backend_settings == f"k8s-ag-ingress-{NAMESPACE}-web-80-bhs"

    assert len(document.request_routing_rules) == len(document.http_listeners)


def test_tls():
    result = build(BASE + tls_secret_manifest() + ingress_manifest(tls=[ ([ HOST ], "foo-tls") ]))

    assert len(result.errors) == 0

    document = result.document

    assert [ p.port for p in document.frontend_ports ] == [ 443, 80 ]

    assert [ c.name for c in document.ssl_certificates ] == [ f"k8s-ag-ingress-{NAMESPACE}-foo-tls" ]
    assert document.ssl_certificates[0].certificate == "LS0tY2VydA=="

    https = listeners(result)["k8s-ag-ingress-foo.baz-443-fl"]

    assert https.protocol == "Https"
    assert https.frontend_port == "k8s-ag-ingress-fp-443"
    assert https.ssl_certificate == f"k8s-ag-ingress-{NAMESPACE}-foo-tls"

    assert "k8s-ag-ingress-bar.baz-443-fl" not in listeners(result)

    # The HTTPS listener routes the same paths as the HTTP one.
    https_map = document.get("url_path_maps", "k8s-ag-ingress-foo.baz-443-url")
    http_map = document.get("url_path_maps", "k8s-ag-ingress-foo.baz-80-url")

    assert https_map.path_rules == http_map.path_rules


def test_tls_without_hosts_covers_every_host():
    result = build(BASE + tls_secret_manifest() + ingress_manifest(tls=[ ([], "foo-tls") ]))

    assert len(result.errors) == 0

    names = listeners(result)

    assert "k8s-ag-ingress-foo.baz-443-fl" in names
    assert "k8s-ag-ingress-bar.baz-443-fl" in names
    assert len(result.document.ssl_certificates) == 1


def test_missing_secret():
    result = build(BASE + ingress_manifest(tls=[ ([ HOST ], "nope") ]))

    assert error_kinds(result) == [ "SECRET_NOT_FOUND" ]
    assert [ p.port for p in result.document.frontend_ports ] == [ 80 ]
    assert all(l.protocol == "Http" for l in result.document.http_listeners)

    # Plain HTTP routing is untouched.
    assert len(result.document.url_path_maps) == 2


def test_invalid_secret():
    secret = tls_secret_manifest().replace("  tls.key: LS0ta2V5\n", "")
    result = build(BASE + secret + ingress_manifest(tls=[ ([ HOST ], "foo-tls") ]))

    assert error_kinds(result) == [ "INVALID_SECRET" ]
    assert result.document.ssl_certificates == ()


def test_ssl_redirect():
    ingress = ingress_manifest(tls=[ ([ HOST ], "foo-tls") ], annotations={ P + "ssl-redirect": "true" })
    result = build(BASE + tls_secret_manifest() + ingress)

    assert len(result.errors) == 0

    by_listener = rules(result)
    foo_http = by_listener["k8s-ag-ingress-foo.baz-80-fl"]

    assert foo_http.rule_type == "Basic"
    assert foo_http.redirect == "k8s-ag-ingress-foo.baz-80-sslr"
    assert foo_http.backend_pool is None

    redirect = result.document.get("redirect_configurations", foo_http.redirect)

    assert redirect.target_listener == "k8s-ag-ingress-foo.baz-443-fl"
    assert redirect.redirect_type == "Permanent"

    # HTTPS still routes by path, and the host without TLS isn't redirected.
    assert by_listener["k8s-ag-ingress-foo.baz-443-fl"].rule_type == "PathBasedRouting"
    assert by_listener["k8s-ag-ingress-bar.baz-80-fl"].rule_type == "PathBasedRouting"


PATHS_INGRESS = f"""
---
apiVersion: networking.k8s.io/v1
kind: Ingress
metadata:
  name: paths
  namespace: {NAMESPACE}
  annotations:
    kubernetes.io/ingress.class: azure/application-gateway
spec:
  rules:
  - host: paths.baz
    http:
      paths:
      - path: /
        pathType: Prefix
        backend:
          service:
            name: web
            port:
              number: 80
      - path: /a
        pathType: Prefix
        backend:
          service:
            name: web
            port:
              number: 80
      - path: /a/b
        pathType: Exact
        backend:
          service:
            name: web
            port:
              number: 554
      - path: /a/b/c
        pathType: Prefix
        backend:
          service:
            name: web
            port:
              number: 80
      - path: /a/b
        pathType: Prefix
        backend:
          service:
            name: web
            port:
              number: 80
"""


def test_path_order():
    result = build(BASE + PATHS_INGRESS)

    assert len(result.errors) == 0

    url_path_map = result.document.get("url_path_maps", "k8s-ag-ingress-paths.baz-80-url")

    # Exact /a/b claims /a/b, so Prefix /a/b only gets what lies beneath it.
    assert [ rule.paths for rule in url_path_map.path_rules ] == [
        ("/a/b",), ("/a/b/c", "/a/b/c/*"), ("/a/b/*",), ("/a", "/a/*"), ("/*",)
    ]

    exact = url_path_map.path_rules[0]

    assert exact.backend_settings == f"k8s-ag-ingress-{NAMESPACE}-web-554-bhs"


def test_conflict():
    yaml = BASE + ingress_manifest(name="first") + ingress_manifest(name="second")
    yaml = yaml.replace("servicePort: https", "servicePort: 554")

    result = build(yaml)

    assert error_kinds(result) == [ "CONFLICT", "CONFLICT" ]
    assert { e.rkey for e in result.errors } == { f"{NAMESPACE}/second" }

    url_path_map = result.document.get("url_path_maps", "k8s-ag-ingress-foo.baz-80-url")

    assert len(url_path_map.path_rules) == 1
    assert f"-{NAMESPACE}-first-pr-" in url_path_map.path_rules[0].name


def test_default_backend():
    yaml = BASE + f"""
---
apiVersion: networking.k8s.io/v1
kind: Ingress
metadata:
  name: catch-all
  namespace: {NAMESPACE}
  annotations:
    kubernetes.io/ingress.class: azure/application-gateway
spec:
  defaultBackend:
    service:
      name: web
      port:
        name: https
""" + ingress_manifest()

    result = build(yaml)

    assert len(result.errors) == 0

    default_rule = rules(result)["k8s-ag-ingress-80-fl"]

    assert default_rule.backend_pool == f"k8s-ag-ingress-{NAMESPACE}-web-https-bp"
    assert default_rule.backend_settings == f"k8s-ag-ingress-{NAMESPACE}-web-https-bhs"

    # Host listeners fall back to it too.
    url_path_map = result.document.get("url_path_maps", "k8s-ag-ingress-foo.baz-80-url")

    assert url_path_map.default_backend_pool == default_rule.backend_pool


def test_unresolvable_default_backend():
    yaml = BASE + f"""
---
apiVersion: networking.k8s.io/v1
kind: Ingress
metadata:
  name: catch-all
  namespace: {NAMESPACE}
  annotations:
    kubernetes.io/ingress.class: azure/application-gateway
spec:
  defaultBackend:
    service:
      name: missing
      port:
        number: 80
"""

    result = build(yaml)

    assert error_kinds(result) == [ "SERVICE_NOT_FOUND" ]
    assert rules(result)["k8s-ag-ingress-80-fl"].backend_pool == "k8s-ag-ingress-defaultaddresspool"


def test_gateway_paths():
    # Prefix matches whole path elements: /a and everything under /a/.
    assert gateway_paths("/a", "Prefix") == ("/a", "/a/*")
    assert gateway_paths("/a/", "Prefix") == ("/a", "/a/*")
    assert gateway_paths("/", "Prefix") == ("/*",)
    assert gateway_paths("/a/*", "Prefix") == ("/a/*",)
    assert gateway_paths("/a", "Exact") == ("/a",)
    assert gateway_paths("/a", "ImplementationSpecific") == ("/a",)
    assert gateway_paths("", "ImplementationSpecific") == ("/*",)

