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

from typing import Dict, Hashable, Optional

import logging
import re

from ..config import Config
from ..utils import digest

# Gateway resource names top out at 80 characters.
MAX_NAME_LENGTH = 80

_INVALID_CHARS = re.compile(r'[^0-9A-Za-z._-]')


def sanitize(part: str) -> str:
    return _INVALID_CHARS.sub('-', part.replace('*', 'wildcard'))


def shorten(name: str) -> str:
    """
    Names that are too long keep a readable head and get a digest of the
    whole name stuck on the end, so two long names that share a head still
    differ.
    """

    if len(name) <= MAX_NAME_LENGTH:
        return name

    return f"{name[0:MAX_NAME_LENGTH - 9]}-{digest(name)}"


def make_name(*parts: str, prefix: str = Config.name_prefix) -> str:
    return shorten("-".join([ prefix ] + [ sanitize(str(p)) for p in parts ]))


def probe_name(namespace: str, ingress: str, service: str, port: str) -> str:
    return make_name(namespace, ingress, service, port, 'pb')


def pool_name(namespace: str, service: str, port: str) -> str:
    return make_name(namespace, service, port, 'bp')


def settings_name(namespace: str, service: str, port: str) -> str:
    return make_name(namespace, service, port, 'bhs')


def frontend_port_name(port: int) -> str:
    return make_name('fp', str(port))


def certificate_name(namespace: str, secret: str) -> str:
    return make_name(namespace, secret)


def listener_name(port: int, host: Optional[str] = None) -> str:
    if host:
        return make_name(host, str(port), 'fl')

    return make_name(str(port), 'fl')


def _from_listener(listener: str, suffix: str) -> str:
    if listener.endswith('-fl'):
        return shorten(listener[:-3] + suffix)

    return shorten(listener + suffix)


def routing_rule_name(listener: str) -> str:
    return _from_listener(listener, '-rr')


def url_path_map_name(listener: str) -> str:
    return _from_listener(listener, '-url')


def redirect_name(listener: str) -> str:
    return _from_listener(listener, '-sslr')


def path_rule_name(namespace: str, ingress: str, host: str, path: str, path_type: str) -> str:
    return make_name(namespace, ingress, 'pr', digest(host, path, path_type))


DEFAULT_PROBE = make_name('defaultprobe')
DEFAULT_POOL = make_name('defaultaddresspool')
DEFAULT_SETTINGS = make_name('defaulthttpsetting')


class NameRegistry:
    """
    Hands out names for one kind of gateway object within one build. The
    first identity to ask for a base name gets it as-is; a different identity
    asking for the same base name gets a digest of its identity appended.
    Asking again with the same identity returns the same name.
    """

    def __init__(self, kind: str, logger: logging.Logger) -> None:
        self.kind = kind
        self.logger = logger
        self.owners: Dict[str, Hashable] = {}
        self.names: Dict[Hashable, str] = {}

    def claim(self, base: str, identity: Hashable) -> str:
        name = self.names.get(identity)

        if name:
            return name

        name = base
        owner = self.owners.get(name)

        if (owner is not None) and (owner != identity):
            name = shorten(f"{base}-{digest(repr(identity))}")
            self.logger.debug(f"COLLISION: {self.kind} {base} taken, using {name}")

        self.owners[name] = identity
        self.names[identity] = name

        return name

    def reserve(self, name: str, identity: Hashable) -> None:
        self.owners[name] = identity
        self.names[identity] = name

    def __contains__(self, name: str) -> bool:
        return name in self.owners
