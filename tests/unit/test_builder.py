import logging

import pytest

from appgw import Config, ConfigBuilder
from appgw.ir import BuildResult, ConfigurationDocument, DanglingReferenceError
from appgw.ir.document import BackendHTTPSettings, HTTPListener, Probe, RequestRoutingRule
from appgw.utils import parse_json

from tests.utils import (
    NAMESPACE, build, endpoints_manifest, error_kinds, ingress_manifest, load_cache, service_manifest
)

logger = logging.getLogger("appgw")


def test_unpacks(default_result):
    document, errors = default_result

    assert isinstance(default_result, BuildResult)
    assert document is default_result.document
    assert errors == ()
    assert default_result.ok


def test_deterministic(manifests):
    first = build(manifests).document.as_json()
    second = build(manifests).document.as_json()

    assert first == second


def test_input_order_does_not_matter():
    yaml = service_manifest() + endpoints_manifest()
    yaml += ingress_manifest(name="one") + ingress_manifest(name="two").replace("foo.baz", "two.baz")

    snapshot = load_cache(yaml).snapshot()
    builder = ConfigBuilder(Config(), logger)

    forward = builder.build(snapshot.ingresses(), snapshot)
    backward = builder.build(list(reversed(snapshot.ingresses())), snapshot)

    assert forward.document.as_json() == backward.document.as_json()
    assert forward.errors == backward.errors


def test_duplicate_ingresses_are_ignored(manifests):
    snapshot = load_cache(manifests).snapshot()
    ingresses = snapshot.ingresses()

    result = ConfigBuilder().build(ingresses + ingresses, snapshot)

    assert len(result.errors) == 0
    assert result.document == build(manifests).document


def test_referential_integrity(default_result):
    document = default_result.document

    # validate() returns the document when everything resolves.
    assert document.validate() is document

    names = { collection: set(document.names(collection))
              for collection in ("probes", "backend_address_pools", "backend_http_settings", "http_listeners") }

    for settings in document.backend_http_settings:
        assert settings.probe in names["probes"]

    for rule in document.request_routing_rules:
        assert rule.listener in names["http_listeners"]


def test_dangling_reference():
    document = ConfigurationDocument(
        backend_http_settings=(BackendHTTPSettings(name="s", probe="missing"),),
    )

    with pytest.raises(DanglingReferenceError) as excinfo:
        document.validate()

    assert excinfo.value.target == "missing"
    assert excinfo.value.target_kind == "probes"


def test_collections_sorted():
    document = ConfigurationDocument(probes=(Probe(name="b"), Probe(name="a")))

    assert [ p.name for p in document.probes ] == [ "a", "b" ]


def test_partial_failure():
    # One Ingress points at a Service that doesn't exist. The other one
    # builds exactly as it would on its own.
    good = service_manifest() + endpoints_manifest() + ingress_manifest()
    bad = ingress_manifest(name="broken").replace("serviceName: web\n", "serviceName: missing\n").replace(
        "foo.baz", "one.baz").replace("bar.baz", "two.baz")

    alone = build(good)
    together = build(good + bad)

    assert error_kinds(together) == [ "SERVICE_NOT_FOUND", "SERVICE_NOT_FOUND" ]
    assert not together.ok
    assert { e.rkey for e in together.errors } == { f"{NAMESPACE}/broken" }

    for collection in ("probes", "backend_address_pools", "backend_http_settings"):
        assert together.document.collection(collection) == alone.document.collection(collection)

    # The broken hosts still get listeners, routed to the default pool.
    rule = [ r for r in together.document.request_routing_rules if r.listener == "k8s-ag-ingress-one.baz-80-fl" ][0]

    assert rule.rule_type == "Basic"
    assert rule.backend_pool == "k8s-ag-ingress-defaultaddresspool"


def test_endpoint_churn_keeps_names(manifests):
    before = build(manifests).document
    after = build(manifests.replace("ip: 10.9.8.7", "ip: 10.9.8.6")).document

    assert [ p.name for p in before.backend_address_pools ] == [ p.name for p in after.backend_address_pools ]
    assert after.backend_address_pools[1].addresses == ("10.9.8.6",)


def test_long_names():
    namespace = "a-namespace-with-a-really-quite-long-name"
    yaml = service_manifest(namespace=namespace) + endpoints_manifest(namespace=namespace)
    yaml += ingress_manifest(name="an-ingress-whose-name-is-also-rather-long", namespace=namespace)

    result = build(yaml)

    assert len(result.errors) == 0

    for entity in result.document.entities():
        assert len(entity.name) <= 80


def test_as_json(default_result):
    js = default_result.document.as_json()
    od = parse_json(js)

    assert list(od.keys()) == sorted(od.keys())
    assert len(od["probes"]) == 3
    assert len(od["requestRoutingRules"]) == 3
    assert od["sslCertificates"] == []

    assert ConfigurationDocument.from_dict(od) == default_result.document


def test_from_dict_defaults():
    document = ConfigurationDocument.from_dict({
        "httpListeners": [
            { "name": "manual", "properties": { "frontendPort": { "name": "port" } } }
        ],
        "requestRoutingRules": [
            { "name": "manual-rule", "properties": { "httpListener": { "name": "manual" } } }
        ],
    })

    assert document.http_listeners == (HTTPListener(name="manual", frontend_port="port"),)
    assert document.request_routing_rules == (RequestRoutingRule(name="manual-rule", listener="manual"),)
    assert document.probes == ()
