import logging

from appgw.ir.naming import (
    DEFAULT_POOL, DEFAULT_PROBE, DEFAULT_SETTINGS, MAX_NAME_LENGTH, NameRegistry, listener_name, make_name,
    path_rule_name, redirect_name, routing_rule_name, sanitize, shorten, url_path_map_name
)

logger = logging.getLogger("appgw")


def test_defaults():
    assert DEFAULT_PROBE == "k8s-ag-ingress-defaultprobe"
    assert DEFAULT_POOL == "k8s-ag-ingress-defaultaddresspool"
    assert DEFAULT_SETTINGS == "k8s-ag-ingress-defaulthttpsetting"


def test_sanitize():
    assert sanitize("*.example.com") == "wildcard.example.com"
    assert sanitize("a/b c:d") == "a-b-c-d"
    assert sanitize("ok_name-1.2") == "ok_name-1.2"


def test_shorten():
    short = "k8s-ag-ingress-short"
    assert shorten(short) == short

    long1 = "k8s-ag-ingress-" + "x" * 100
    long2 = "k8s-ag-ingress-" + "x" * 101

    assert len(shorten(long1)) == MAX_NAME_LENGTH
    assert shorten(long1).startswith(long1[:71] + "-")
    assert shorten(long1) != shorten(long2)
    assert shorten(long1) == shorten(long1)


def test_listener_family():
    default = listener_name(80)
    host = listener_name(443, "*.example.com")

    assert default == "k8s-ag-ingress-80-fl"
    assert host == "k8s-ag-ingress-wildcard.example.com-443-fl"

    assert routing_rule_name(host) == "k8s-ag-ingress-wildcard.example.com-443-rr"
    assert url_path_map_name(host) == "k8s-ag-ingress-wildcard.example.com-443-url"
    assert redirect_name(default) == "k8s-ag-ingress-80-sslr"


def test_path_rule_name():
    a = path_rule_name("ns", "ing", "foo.baz", "/a", "Prefix")
    b = path_rule_name("ns", "ing", "foo.baz", "/a", "Exact")

    assert a.startswith("k8s-ag-ingress-ns-ing-pr-")
    assert a != b
    assert a == path_rule_name("ns", "ing", "foo.baz", "/a", "Prefix")


def test_make_name_prefix():
    assert make_name("a", "b", prefix="other") == "other-a-b"


class TestNameRegistry:
    def test_claim(self):
        registry = NameRegistry("probe", logger)

        first = registry.claim("k8s-ag-ingress-x", ("foo.baz", "/"))
        again = registry.claim("k8s-ag-ingress-x", ("foo.baz", "/"))
        other = registry.claim("k8s-ag-ingress-x", ("bar.baz", "/"))

        assert first == again == "k8s-ag-ingress-x"
        assert other.startswith("k8s-ag-ingress-x-")
        assert other != first
        assert other in registry

    def test_deterministic(self):
        names = []

        for _ in range(2):
            registry = NameRegistry("pool", logger)
            registry.claim("base", ("10.0.0.1",))
            names.append(registry.claim("base", ("10.0.0.2",)))

        assert names[0] == names[1]

    def test_reserve(self):
        registry = NameRegistry("probe", logger)
        registry.reserve(DEFAULT_PROBE, ("localhost", "/"))

        assert registry.claim(DEFAULT_PROBE, ("elsewhere", "/")) != DEFAULT_PROBE
        assert registry.claim("anything", ("localhost", "/")) == DEFAULT_PROBE
