from typing import Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

import logging

from ..config import Config
from ..fetch.cache import CacheSnapshot
from ..fetch.ingress import Ingress
from ..fetch.k8sobject import ResourceKey

from .document import (
    FrontendPort, HTTPListener, PathRule, RedirectConfiguration, RequestRoutingRule, SSLCertificate, URLPathMap
)
from .errors import BuildErrors, ErrorKind
from .irbackend import BackendRef
from .naming import (
    NameRegistry, certificate_name, frontend_port_name, listener_name, path_rule_name, redirect_name,
    routing_rule_name, url_path_map_name
)

HTTP_PORT = 80
HTTPS_PORT = 443


class BackendTarget (NamedTuple):
    pool: str
    settings: str


class RoutedPath (NamedTuple):
    ref: BackendRef
    target: BackendTarget


# (host, port); host '' is the default listener.
ListenerKey = Tuple[str, int]


def gateway_paths(path: str, path_type: str) -> Tuple[str, ...]:
    """
    Turn an Ingress path into gateway path patterns. Exact and
    implementation-specific paths are passed through.

    Kubernetes matches Prefix paths element by element, so /foo matches /foo
    and /foo/bar but not /foobar: that takes both /foo and /foo/* on the
    gateway. A trailing slash doesn't count, and a Prefix path that already
    ends in * is taken as written.
    """

    if not path:
        return ('/*',)

    if path_type != 'Prefix' or path.endswith('*'):
        return (path,)

    base = path.rstrip('/')

    if not base:
        return ('/*',)

    return (base, base + '/*')



def path_rule_order(path: RoutedPath) -> Tuple:
    # Exact before everything else, then longer before shorter.
    ref = path.ref
    return (0 if ref.path_type == 'Exact' else 1, -len(ref.path), ref.path, ref.rkey, ref.rule_index, ref.path_index)


class ListenerSynthesizer:
    """
    Builds everything on the frontend side of the gateway: frontend ports,
    certificates, listeners, redirects, URL path maps and one routing rule
    per listener.

    Every Ingress host gets an HTTP listener; hosts covered by a TLS section
    with a usable Secret also get an HTTPS listener. The default HTTP
    listener always exists and sends everything else to the fallback target.
    """

    def __init__(self, config: Config, snapshot: CacheSnapshot, errors: BuildErrors,
                 logger: logging.Logger) -> None:
        self.config = config
        self.snapshot = snapshot
        self.errors = errors
        self.logger = logger

        self.listener_names = NameRegistry('listener', logger)
        self.certificate_names = NameRegistry('certificate', logger)

        self.certificates: Dict[ResourceKey, SSLCertificate] = {}

        # host -> certificate name; '' is the default HTTPS listener.
        self.https_hosts: Dict[str, str] = {}

        # host -> (path, path type) -> routed path
        self.host_paths: Dict[str, Dict[Tuple[str, str], RoutedPath]] = {}

        self.redirect_hosts: Dict[str, str] = {}
        self.host_defaults: Dict[str, BackendTarget] = {}

        self.http_hosts: Dict[str, None] = { '': None }

    def certificate_for(self, ingress: Ingress, secret_name: Optional[str]) -> Optional[SSLCertificate]:
        rkey = str(ingress.key)

        if not secret_name:
            self.errors.post_error("TLS section has no secretName", rkey=rkey, kind=ErrorKind.INVALID_SECRET)
            return None

        key = ResourceKey(ingress.namespace, secret_name)

        if key in self.certificates:
            return self.certificates[key]

        secret = self.snapshot.get_secret(key)

        if not secret:
            self.errors.post_error(f"TLS secret {key} not found", rkey=rkey, kind=ErrorKind.SECRET_NOT_FOUND)
            return None

        data = secret.get('data') or {}
        certificate = data.get('tls.crt')
        private_key = data.get('tls.key')

        if not certificate or not private_key:
            self.errors.post_error(f"TLS secret {key} needs both tls.crt and tls.key",
                                   rkey=rkey, kind=ErrorKind.INVALID_SECRET)
            return None

        name = self.certificate_names.claim(certificate_name(key.namespace, key.name), key)

        cert = SSLCertificate(name=name, certificate=certificate, key=private_key)
        self.certificates[key] = cert

        return cert

    def add_tls(self, ingress: Ingress) -> None:
        for tls in ingress.tls:
            cert = self.certificate_for(ingress, tls.secret_name)

            if not cert:
                continue

            # A TLS section with no hosts covers every host of its Ingress.
            hosts = tls.hosts or ingress.hosts or ('',)

            for host in hosts:
                current = self.https_hosts.get(host)

                if current and current != cert.name:
                    self.errors.post_error(f"host {host or '*'} already uses certificate {current}, ignoring {cert.name}",
                                           rkey=str(ingress.key), kind=ErrorKind.CONFLICT)
                    continue

                self.https_hosts[host] = cert.name

    def add_paths(self, ingress: Ingress, paths: Sequence[RoutedPath]) -> None:
        rkey = str(ingress.key)

        for host in ingress.hosts:
            self.http_hosts.setdefault(host, None)

        for routed in paths:
            ref = routed.ref

            if ref.is_default:
                # The first Ingress with a default backend for a host sets that
                # host's fallback; host-less Ingresses set the global one.
                for host in (ingress.hosts or ('',)):
                    self.host_defaults.setdefault(host, routed.target)

                continue

            host_paths = self.host_paths.setdefault(ref.host, {})
            path_key = (gateway_paths(ref.path, ref.path_type), ref.path_type)

            existing = host_paths.get(path_key)

            if existing:
                self.errors.post_error(
                    f"{ref.host or '*'}{ref.path} ({ref.path_type}) is already routed by {existing.ref.rkey}, ignoring",
                    rkey=rkey, kind=ErrorKind.CONFLICT
                )
                continue

            host_paths[path_key] = routed

    def add_redirects(self, ingress: Ingress) -> None:
        for host in ingress.hosts or ('',):
            if host in self.https_hosts:
                self.redirect_hosts.setdefault(host, str(ingress.key))

    def listener(self, host: str, port: int) -> str:
        return self.listener_names.claim(listener_name(port, host), (host, port))

    def default_target(self, host: str, fallback: BackendTarget) -> BackendTarget:
        return self.host_defaults.get(host) or self.host_defaults.get('') or fallback

    def path_rules(self, host: str, paths: List[RoutedPath]) -> Tuple[PathRule, ...]:
        # paths is in match order. A gateway path belongs to the first rule
        # that asks for it: Exact /foo keeps /foo away from Prefix /foo.
        claimed: Set[str] = set()
        rules = []

        for p in paths:
            ref = p.ref
            wanted = tuple(gp for gp in gateway_paths(ref.path, ref.path_type) if gp not in claimed)

            if not wanted:
                self.logger.debug(f"{host or '*'}{ref.path} ({ref.path_type}): nothing left to route")
                continue

            claimed.update(wanted)

            rules.append(PathRule(
                name=path_rule_name(ref.ingress.namespace, ref.ingress.name, host, ref.path, ref.path_type),
                paths=wanted,
                backend_pool=p.target.pool,
                backend_settings=p.target.settings,
            ))

        return tuple(rules)

    def synthesize(self, ingresses: Sequence[Tuple[Ingress, bool, Sequence[RoutedPath]]],
                   fallback: BackendTarget) -> Dict[str, List]:
        """
        ingresses is (ingress, wants SSL redirect, routed paths) in build
        order. Returns the document collections this synthesizer owns.
        """

        for ingress, _, _ in ingresses:
            self.add_tls(ingress)

        for ingress, ssl_redirect, paths in ingresses:
            self.add_paths(ingress, paths)

            if ssl_redirect:
                self.add_redirects(ingress)

        frontend_ports = [ FrontendPort(name=frontend_port_name(HTTP_PORT), port=HTTP_PORT) ]

        if self.https_hosts:
            frontend_ports.append(FrontendPort(name=frontend_port_name(HTTPS_PORT), port=HTTPS_PORT))

        listeners: List[HTTPListener] = []
        redirects: List[RedirectConfiguration] = []
        url_path_maps: List[URLPathMap] = []
        routing_rules: List[RequestRoutingRule] = []

        keys: List[ListenerKey] = [ (host, HTTP_PORT) for host in self.http_hosts ]
        keys += [ (host, HTTPS_PORT) for host in self.https_hosts ]

        for host, port in keys:
            name = self.listener(host, port)
            https = (port == HTTPS_PORT)

            listeners.append(HTTPListener(
                name=name,
                frontend_port=frontend_port_name(port),
                protocol='Https' if https else 'Http',
                host_name=host or None,
                ssl_certificate=self.https_hosts[host] if https else None,
            ))

            rule_name = routing_rule_name(name)

            if (not https) and (host in self.redirect_hosts):
                redirect = RedirectConfiguration(name=redirect_name(name), target_listener=self.listener(host, HTTPS_PORT))
                redirects.append(redirect)

                routing_rules.append(RequestRoutingRule(
                    name=rule_name, rule_type=RequestRoutingRule.BASIC, listener=name, redirect=redirect.name
                ))

                self.logger.debug(f"listener {name}: redirecting to HTTPS for {self.redirect_hosts[host]}")
                continue

            target = self.default_target(host, fallback)
            paths = sorted(self.host_paths.get(host, {}).values(), key=path_rule_order)

            if not paths:
                routing_rules.append(RequestRoutingRule(
                    name=rule_name, rule_type=RequestRoutingRule.BASIC, listener=name,
                    backend_pool=target.pool, backend_settings=target.settings
                ))
                continue

            path_rules = self.path_rules(host, paths)


            url_path_map = URLPathMap(
                name=url_path_map_name(name),
                default_backend_pool=target.pool,
                default_backend_settings=target.settings,
                path_rules=path_rules,
            )
            url_path_maps.append(url_path_map)

            routing_rules.append(RequestRoutingRule(
                name=rule_name, rule_type=RequestRoutingRule.PATH_BASED, listener=name, url_path_map=url_path_map.name
            ))

        return {
            'frontend_ports': frontend_ports,
            'ssl_certificates': list(self.certificates.values()),
            'http_listeners': listeners,
            'redirect_configurations': redirects,
            'url_path_maps': url_path_maps,
            'request_routing_rules': routing_rules,
        }
