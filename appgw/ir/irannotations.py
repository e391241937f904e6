from typing import Any, Callable, Dict, Optional, Tuple

import dataclasses
import re

from ..config import Config
from ..fetch.ingress import Ingress
from ..utils import parse_duration, parse_flag

from .errors import BuildErrors, ErrorKind

# Annotation suffixes (after Config.annotation_prefix).
HEALTH_PROBE_PATH = 'health-probe-path'
HEALTH_PROBE_HOSTNAME = 'health-probe-hostname'
HEALTH_PROBE_INTERVAL = 'health-probe-interval'
HEALTH_PROBE_TIMEOUT = 'health-probe-timeout'
HEALTH_PROBE_UNHEALTHY_THRESHOLD = 'health-probe-unhealthy-threshold'
HEALTH_PROBE_STATUS_CODES = 'health-probe-status-codes'
BACKEND_PROTOCOL = 'backend-protocol'
BACKEND_HOSTNAME = 'backend-hostname'
BACKEND_PATH_PREFIX = 'backend-path-prefix'
CONNECTION_DRAINING = 'connection-draining'
CONNECTION_DRAINING_TIMEOUT = 'connection-draining-timeout'
COOKIE_BASED_AFFINITY = 'cookie-based-affinity'
REQUEST_TIMEOUT = 'request-timeout'
SSL_REDIRECT = 'ssl-redirect'

_HOSTNAME_RE = re.compile(r'^[A-Za-z0-9]([A-Za-z0-9.-]*[A-Za-z0-9])?$')
_STATUS_RANGE_RE = re.compile(r'^(\d{3})(?:-(\d{3}))?$')


class MalformedAnnotation (ValueError):
    pass


def _path(value: str) -> str:
    if not value.startswith('/') or any(c.isspace() for c in value):
        raise MalformedAnnotation('must be an absolute URL path')

    return value


def _hostname(value: str) -> str:
    value = value.strip().lower()

    if not _HOSTNAME_RE.match(value):
        raise MalformedAnnotation('must be a DNS hostname')

    return value


def _seconds(low: int, high: int) -> Callable[[str], int]:
    def parse(value: str) -> int:
        try:
            seconds = parse_duration(value)
        except ValueError as e:
            raise MalformedAnnotation(str(e))

        if seconds != int(seconds) or not (low <= seconds <= high):
            raise MalformedAnnotation(f'must be a whole number of seconds from {low} to {high}')

        return int(seconds)

    return parse


def _count(low: int, high: int) -> Callable[[str], int]:
    def parse(value: str) -> int:
        try:
            count = int(value.strip())
        except ValueError:
            raise MalformedAnnotation('must be an integer')

        if not (low <= count <= high):
            raise MalformedAnnotation(f'must be from {low} to {high}')

        return count

    return parse


def _flag(value: str) -> bool:
    flag = parse_flag(value)

    if flag is None:
        raise MalformedAnnotation('must be true or false')

    return flag


def _protocol(value: str) -> str:
    protocol = value.strip().lower()

    if protocol == 'http':
        return 'Http'
    elif protocol == 'https':
        return 'Https'

    raise MalformedAnnotation('must be http or https')


def _status_codes(value: str) -> Tuple[str, ...]:
    codes = []

    for element in value.split(','):
        element = element.strip()
        match = _STATUS_RANGE_RE.match(element)

        if not match:
            raise MalformedAnnotation(f'{element!r} is not a status code or range')

        low = int(match.group(1))
        high = int(match.group(2) or low)

        if not (100 <= low <= high <= 599):
            raise MalformedAnnotation(f'{element!r} is not a valid status range')

        codes.append(element)

    return tuple(codes)


def _text(value: str) -> str:
    value = value.strip()

    if not value:
        raise MalformedAnnotation('must not be empty')

    return value


# suffix -> (field, parser)
PARSERS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    HEALTH_PROBE_PATH: ('probe_path', _path),
    HEALTH_PROBE_HOSTNAME: ('probe_host', _hostname),
    HEALTH_PROBE_INTERVAL: ('probe_interval', _seconds(1, 86400)),
    HEALTH_PROBE_TIMEOUT: ('probe_timeout', _seconds(1, 86400)),
    HEALTH_PROBE_UNHEALTHY_THRESHOLD: ('probe_unhealthy_threshold', _count(1, 20)),
    HEALTH_PROBE_STATUS_CODES: ('probe_status_codes', _status_codes),
    BACKEND_PROTOCOL: ('backend_protocol', _protocol),
    BACKEND_HOSTNAME: ('backend_hostname', _hostname),
    BACKEND_PATH_PREFIX: ('backend_path_prefix', _text),
    CONNECTION_DRAINING: ('connection_draining', _flag),
    CONNECTION_DRAINING_TIMEOUT: ('connection_draining_timeout', _seconds(1, 3600)),
    COOKIE_BASED_AFFINITY: ('cookie_based_affinity', _flag),
    REQUEST_TIMEOUT: ('request_timeout', _seconds(1, 86400)),
    SSL_REDIRECT: ('ssl_redirect', _flag),
}


@dataclasses.dataclass(frozen=True)
class IngressAnnotations:
    """
    The gateway settings an Ingress asks for through its annotations. Fields
    left as None mean "use the default".
    """

    probe_path: Optional[str] = None
    probe_host: Optional[str] = None
    probe_interval: Optional[int] = None
    probe_timeout: Optional[int] = None
    probe_unhealthy_threshold: Optional[int] = None
    probe_status_codes: Optional[Tuple[str, ...]] = None
    backend_protocol: str = 'Http'
    backend_hostname: Optional[str] = None
    backend_path_prefix: Optional[str] = None
    connection_draining: bool = False
    connection_draining_timeout: int = 30
    cookie_based_affinity: bool = False
    request_timeout: int = 30
    ssl_redirect: bool = False

    @classmethod
    def from_ingress(cls, ingress: Ingress, errors: BuildErrors,
                     prefix: str = Config.annotation_prefix) -> 'IngressAnnotations':
        """
        Parse the annotations of an Ingress. A malformed value is posted as a
        warning and the default for that field is used instead; nothing here
        stops the build.
        """

        values: Dict[str, Any] = {}

        for annotation, raw in sorted(ingress.annotations.items()):
            if not annotation.startswith(prefix):
                continue

            suffix = annotation[len(prefix):]
            parser = PARSERS.get(suffix)

            if not parser:
                errors.post_notice(f"ignoring unknown annotation {annotation}", rkey=str(ingress.key))
                continue

            field, parse = parser

            try:
                values[field] = parse(str(raw))
            except MalformedAnnotation as e:
                errors.post_error(f"annotation {annotation}: invalid value {raw!r}: {e}, using default",
                                  rkey=str(ingress.key), kind=ErrorKind.MALFORMED_ANNOTATION)

        return cls(**values)
