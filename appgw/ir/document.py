# Copyright 2018 Datawire. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License

from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple, Type

import copy
import dataclasses

from ..utils import dump_json

from .errors import DanglingReferenceError

AnyDict = Dict[str, Any]

# (collection, name) of something an entity points at.
Reference = Tuple[str, str]


def _ref(name: Optional[str]) -> Optional[AnyDict]:
    return { 'name': name } if name else None


def _ref_name(value: Optional[AnyDict]) -> Optional[str]:
    return value.get('name') if value else None


def _compact(d: AnyDict) -> AnyDict:
    # Leave out unset optional properties rather than writing nulls.
    return { k: v for k, v in d.items() if v is not None }


@dataclasses.dataclass(frozen=True)
class GatewayEntity:
    """
    Base for everything in a ConfigurationDocument. Subclasses say which
    document collection they live in, what they reference, and how they look
    on the wire.

    An entity read back from the wire keeps the dict it came from in raw, and
    as_dict() hands that back untouched: the gateway may carry properties we
    don't model, and an entity we don't own must go back out exactly as it
    came in. canonical() drops raw, for entities we rebuild anyway.
    """

    collection: ClassVar[str] = ''

    name: str
    raw: Optional[AnyDict] = dataclasses.field(default=None, compare=False, repr=False)

    def references(self) -> List[Reference]:
        return []

    def properties(self) -> AnyDict:
        return {}

    def canonical(self) -> 'GatewayEntity':
        return dataclasses.replace(self, raw=None)

    def as_dict(self) -> AnyDict:
        if self.raw is not None:
            return copy.deepcopy(self.raw)

        return { 'name': self.name, 'properties': _compact(self.properties()) }


    @classmethod
    def from_dict(cls, d: AnyDict) -> 'GatewayEntity':
        raise NotImplementedError(f"{cls.__name__}.from_dict")


@dataclasses.dataclass(frozen=True)
class Probe (GatewayEntity):
    collection: ClassVar[str] = 'probes'

    protocol: str = 'Http'
    host: str = 'localhost'
    path: str = '/'
    interval: int = 30
    timeout: int = 30
    unhealthy_threshold: int = 3
    match_status_codes: Optional[Tuple[str, ...]] = None

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.host.lower(), self.path)

    def properties(self) -> AnyDict:
        return {
            'protocol': self.protocol,
            'host': self.host,
            'path': self.path,
            'interval': self.interval,
            'timeout': self.timeout,
            'unhealthyThreshold': self.unhealthy_threshold,
            'match': { 'statusCodes': list(self.match_status_codes) } if self.match_status_codes else None,
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'Probe':
        p = d.get('properties') or {}
        codes = (p.get('match') or {}).get('statusCodes')

        return cls(
            name=d['name'],
            raw=d,
            protocol=p.get('protocol', 'Http'),
            host=p.get('host', 'localhost'),
            path=p.get('path', '/'),
            interval=p.get('interval', 30),
            timeout=p.get('timeout', 30),
            unhealthy_threshold=p.get('unhealthyThreshold', 3),
            match_status_codes=tuple(codes) if codes else None,
        )


@dataclasses.dataclass(frozen=True)
class BackendAddressPool (GatewayEntity):
    collection: ClassVar[str] = 'backend_address_pools'

    addresses: Tuple[str, ...] = ()
    fqdns: Tuple[str, ...] = ()

    def properties(self) -> AnyDict:
        return {
            'backendAddresses': [ { 'ipAddress': a } for a in self.addresses ] + [ { 'fqdn': f } for f in self.fqdns ]
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'BackendAddressPool':
        p = d.get('properties') or {}
        entries = p.get('backendAddresses') or []

        return cls(
            name=d['name'],
            raw=d,
            addresses=tuple(a['ipAddress'] for a in entries if a.get('ipAddress')),
            fqdns=tuple(a['fqdn'] for a in entries if a.get('fqdn')),
        )


@dataclasses.dataclass(frozen=True)
class BackendHTTPSettings (GatewayEntity):
    collection: ClassVar[str] = 'backend_http_settings'

    port: int = 80
    protocol: str = 'Http'
    probe: Optional[str] = None
    request_timeout: int = 30
    cookie_based_affinity: bool = False
    connection_draining: bool = False
    connection_draining_timeout: int = 30
    host_name: Optional[str] = None
    path: Optional[str] = None

    def references(self) -> List[Reference]:
        return [ ('probes', self.probe) ] if self.probe else []

    def properties(self) -> AnyDict:
        return {
            'port': self.port,
            'protocol': self.protocol,
            'probe': _ref(self.probe),
            'requestTimeout': self.request_timeout,
            'cookieBasedAffinity': 'Enabled' if self.cookie_based_affinity else 'Disabled',
            'connectionDraining': {
                'enabled': self.connection_draining,
                'drainTimeoutInSec': self.connection_draining_timeout,
            },
            'hostName': self.host_name,
            'path': self.path,
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'BackendHTTPSettings':
        p = d.get('properties') or {}
        draining = p.get('connectionDraining') or {}

        return cls(
            name=d['name'],
            raw=d,
            port=p.get('port', 80),
            protocol=p.get('protocol', 'Http'),
            probe=_ref_name(p.get('probe')),
            request_timeout=p.get('requestTimeout', 30),
            cookie_based_affinity=(p.get('cookieBasedAffinity') == 'Enabled'),
            connection_draining=bool(draining.get('enabled', False)),
            connection_draining_timeout=draining.get('drainTimeoutInSec', 30),
            host_name=p.get('hostName'),
            path=p.get('path'),
        )


@dataclasses.dataclass(frozen=True)
class FrontendPort (GatewayEntity):
    collection: ClassVar[str] = 'frontend_ports'

    port: int = 80

    def properties(self) -> AnyDict:
        return { 'port': self.port }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'FrontendPort':
        return cls(name=d['name'], raw=d, port=(d.get('properties') or {}).get('port', 80))


@dataclasses.dataclass(frozen=True)
class SSLCertificate (GatewayEntity):
    collection: ClassVar[str] = 'ssl_certificates'

    # Both base64, exactly as the Secret carries them.
    certificate: str = ''
    key: str = ''

    def properties(self) -> AnyDict:
        return { 'data': self.certificate, 'keyData': self.key }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'SSLCertificate':
        p = d.get('properties') or {}

        return cls(name=d['name'], raw=d, certificate=p.get('data', ''), key=p.get('keyData', ''))


@dataclasses.dataclass(frozen=True)
class HTTPListener (GatewayEntity):
    collection: ClassVar[str] = 'http_listeners'

    frontend_port: str = ''
    protocol: str = 'Http'
    host_name: Optional[str] = None
    ssl_certificate: Optional[str] = None

    def references(self) -> List[Reference]:
        refs = [ ('frontend_ports', self.frontend_port) ]

        if self.ssl_certificate:
            refs.append(('ssl_certificates', self.ssl_certificate))

        return refs

    def properties(self) -> AnyDict:
        return {
            'frontendPort': _ref(self.frontend_port),
            'protocol': self.protocol,
            'hostName': self.host_name,
            'sslCertificate': _ref(self.ssl_certificate),
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'HTTPListener':
        p = d.get('properties') or {}

        return cls(
            name=d['name'],
            raw=d,
            frontend_port=_ref_name(p.get('frontendPort')) or '',
            protocol=p.get('protocol', 'Http'),
            host_name=p.get('hostName'),
            ssl_certificate=_ref_name(p.get('sslCertificate')),
        )


@dataclasses.dataclass(frozen=True)
class RedirectConfiguration (GatewayEntity):
    collection: ClassVar[str] = 'redirect_configurations'

    target_listener: str = ''
    redirect_type: str = 'Permanent'
    include_path: bool = True
    include_query_string: bool = True

    def references(self) -> List[Reference]:
        # A redirect to an external URL has no target listener.
        return [ ('http_listeners', self.target_listener) ] if self.target_listener else []

    def properties(self) -> AnyDict:
        return {
            'redirectType': self.redirect_type,
            'targetListener': _ref(self.target_listener),
            'includePath': self.include_path,
            'includeQueryString': self.include_query_string,
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'RedirectConfiguration':
        p = d.get('properties') or {}

        return cls(
            name=d['name'],
            raw=d,
            target_listener=_ref_name(p.get('targetListener')) or '',
            redirect_type=p.get('redirectType', 'Permanent'),
            include_path=p.get('includePath', True),
            include_query_string=p.get('includeQueryString', True),
        )


@dataclasses.dataclass(frozen=True)
class PathRule (GatewayEntity):
    paths: Tuple[str, ...] = ()
    backend_pool: Optional[str] = None
    backend_settings: Optional[str] = None
    redirect: Optional[str] = None

    def references(self) -> List[Reference]:
        refs = []

        if self.backend_pool:
            refs.append(('backend_address_pools', self.backend_pool))

        if self.backend_settings:
            refs.append(('backend_http_settings', self.backend_settings))

        if self.redirect:
            refs.append(('redirect_configurations', self.redirect))

        return refs

    def properties(self) -> AnyDict:
        return {
            'paths': list(self.paths),
            'backendAddressPool': _ref(self.backend_pool),
            'backendHttpSettings': _ref(self.backend_settings),
            'redirectConfiguration': _ref(self.redirect),
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'PathRule':
        p = d.get('properties') or {}

        return cls(
            name=d['name'],
            raw=d,
            paths=tuple(p.get('paths') or ()),
            backend_pool=_ref_name(p.get('backendAddressPool')),
            backend_settings=_ref_name(p.get('backendHttpSettings')),
            redirect=_ref_name(p.get('redirectConfiguration')),
        )


@dataclasses.dataclass(frozen=True)
class URLPathMap (GatewayEntity):
    collection: ClassVar[str] = 'url_path_maps'

    default_backend_pool: Optional[str] = None
    default_backend_settings: Optional[str] = None
    default_redirect: Optional[str] = None

    # Order matters here: it's the order the gateway tries them in.
    path_rules: Tuple[PathRule, ...] = ()

    def references(self) -> List[Reference]:
        refs = []

        if self.default_backend_pool:
            refs.append(('backend_address_pools', self.default_backend_pool))

        if self.default_backend_settings:
            refs.append(('backend_http_settings', self.default_backend_settings))

        if self.default_redirect:
            refs.append(('redirect_configurations', self.default_redirect))

        for rule in self.path_rules:
            refs.extend(rule.references())

        return refs

    def canonical(self) -> 'URLPathMap':
        return dataclasses.replace(self, raw=None, path_rules=tuple(rule.canonical() for rule in self.path_rules))

    def properties(self) -> AnyDict:
        return {
            'defaultBackendAddressPool': _ref(self.default_backend_pool),
            'defaultBackendHttpSettings': _ref(self.default_backend_settings),
            'defaultRedirectConfiguration': _ref(self.default_redirect),
            'pathRules': [ rule.as_dict() for rule in self.path_rules ],
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'URLPathMap':
        p = d.get('properties') or {}

        return cls(
            name=d['name'],
            raw=d,
            default_backend_pool=_ref_name(p.get('defaultBackendAddressPool')),
            default_backend_settings=_ref_name(p.get('defaultBackendHttpSettings')),
            default_redirect=_ref_name(p.get('defaultRedirectConfiguration')),
            path_rules=tuple(PathRule.from_dict(r) for r in p.get('pathRules') or []),
        )


@dataclasses.dataclass(frozen=True)
class RequestRoutingRule (GatewayEntity):
    collection: ClassVar[str] = 'request_routing_rules'

    BASIC: ClassVar[str] = 'Basic'
    PATH_BASED: ClassVar[str] = 'PathBasedRouting'

    rule_type: str = 'Basic'
    listener: str = ''
    backend_pool: Optional[str] = None
    backend_settings: Optional[str] = None
    redirect: Optional[str] = None
    url_path_map: Optional[str] = None

    def references(self) -> List[Reference]:
        refs = [ ('http_listeners', self.listener) ]

        if self.backend_pool:
            refs.append(('backend_address_pools', self.backend_pool))

        if self.backend_settings:
            refs.append(('backend_http_settings', self.backend_settings))

        if self.redirect:
            refs.append(('redirect_configurations', self.redirect))

        if self.url_path_map:
            refs.append(('url_path_maps', self.url_path_map))

        return refs

    def properties(self) -> AnyDict:
        return {
            'ruleType': self.rule_type,
            'httpListener': _ref(self.listener),
            'backendAddressPool': _ref(self.backend_pool),
            'backendHttpSettings': _ref(self.backend_settings),
            'redirectConfiguration': _ref(self.redirect),
            'urlPathMap': _ref(self.url_path_map),
        }

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'RequestRoutingRule':
        p = d.get('properties') or {}

        return cls(
            name=d['name'],
            raw=d,
            rule_type=p.get('ruleType', 'Basic'),
            listener=_ref_name(p.get('httpListener')) or '',
            backend_pool=_ref_name(p.get('backendAddressPool')),
            backend_settings=_ref_name(p.get('backendHttpSettings')),
            redirect=_ref_name(p.get('redirectConfiguration')),
            url_path_map=_ref_name(p.get('urlPathMap')),
        )


# Document collection -> (wire key, entity class), in document order.
COLLECTIONS: Dict[str, Tuple[str, Type[GatewayEntity]]] = {
    'probes': ('probes', Probe),
    'backend_address_pools': ('backendAddressPools', BackendAddressPool),
    'backend_http_settings': ('backendHttpSettingsCollection', BackendHTTPSettings),
    'frontend_ports': ('frontendPorts', FrontendPort),
    'ssl_certificates': ('sslCertificates', SSLCertificate),
    'http_listeners': ('httpListeners', HTTPListener),
    'redirect_configurations': ('redirectConfigurations', RedirectConfiguration),
    'url_path_maps': ('urlPathMaps', URLPathMap),
    'request_routing_rules': ('requestRoutingRules', RequestRoutingRule),
}


def _sorted(entities: Iterable[GatewayEntity]) -> Tuple[Any, ...]:
    return tuple(sorted(entities, key=lambda e: e.name))


@dataclasses.dataclass(frozen=True)
class ConfigurationDocument:
    """
    The complete desired state of the gateway. Every collection is kept
    sorted by name, so equal documents always serialize identically.
    """

    probes: Tuple[Probe, ...] = ()
    backend_address_pools: Tuple[BackendAddressPool, ...] = ()
    backend_http_settings: Tuple[BackendHTTPSettings, ...] = ()
    frontend_ports: Tuple[FrontendPort, ...] = ()
    ssl_certificates: Tuple[SSLCertificate, ...] = ()
    http_listeners: Tuple[HTTPListener, ...] = ()
    redirect_configurations: Tuple[RedirectConfiguration, ...] = ()
    url_path_maps: Tuple[URLPathMap, ...] = ()
    request_routing_rules: Tuple[RequestRoutingRule, ...] = ()

    def __post_init__(self) -> None:
        for collection in COLLECTIONS.keys():
            object.__setattr__(self, collection, _sorted(getattr(self, collection)))

    def collection(self, collection: str) -> Tuple[GatewayEntity, ...]:
        return getattr(self, collection)

    def entities(self) -> Iterable[GatewayEntity]:
        for collection in COLLECTIONS.keys():
            yield from self.collection(collection)

    def names(self, collection: str) -> List[str]:
        return [ e.name for e in self.collection(collection) ]

    def get(self, collection: str, name: str) -> Optional[GatewayEntity]:
        for entity in self.collection(collection):
            if entity.name == name:
                return entity

        return None

    def validate(self) -> 'ConfigurationDocument':
        """
        Make sure every reference resolves. Raises DanglingReferenceError
        if one doesn't; returns the document otherwise.
        """

        known = { collection: set(self.names(collection)) for collection in COLLECTIONS.keys() }

        for entity in self.entities():
            for target_collection, target in entity.references():
                if target not in known[target_collection]:
                    raise DanglingReferenceError(f"{entity.collection} {entity.name}", target_collection, target)

        return self

    def as_dict(self) -> AnyDict:
        return {
            wire_key: [ e.as_dict() for e in self.collection(collection) ]
            for collection, (wire_key, _) in COLLECTIONS.items()
        }

    def as_json(self, pretty: bool=True) -> str:
        return dump_json(self.as_dict(), pretty=pretty)

    @classmethod
    def from_dict(cls, d: AnyDict) -> 'ConfigurationDocument':
        """
        Read a document back from its wire form, e.g. the gateway's current
        configuration. Collections that aren't present are empty.
        """

        collections = {}

        for collection, (wire_key, entity_class) in COLLECTIONS.items():
            collections[collection] = tuple(entity_class.from_dict(e) for e in d.get(wire_key) or [])

        return cls(**collections)
