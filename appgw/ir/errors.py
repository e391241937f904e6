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

from typing import Dict, Iterator, List, Optional

import dataclasses
import enum
import logging


class ErrorKind (enum.Enum):
    SERVICE_NOT_FOUND = 'ServiceNotFound'
    PORT_NOT_FOUND = 'PortNotFound'
    UNSUPPORTED_PROTOCOL = 'UnsupportedProtocol'
    INVALID_BACKEND = 'InvalidBackend'
    MALFORMED_ANNOTATION = 'MalformedAnnotation'
    SECRET_NOT_FOUND = 'SecretNotFound'
    INVALID_SECRET = 'InvalidSecret'
    CONFLICT = 'Conflict'
    EXTRANEOUS_DROPPED = 'ExtraneousDropped'


# Kinds that don't cost the user any routing: we fell back to a default,
# or we dropped something we don't own.
WARNING_KINDS = frozenset([ ErrorKind.MALFORMED_ANNOTATION, ErrorKind.EXTRANEOUS_DROPPED ])


class DanglingReferenceError (Exception):
    """
    A configuration document refers to something it doesn't contain. This is
    always a bug in the builder, never a problem with the input.
    """

    def __init__(self, referrer: str, target_kind: str, target: str) -> None:
        self.referrer = referrer
        self.target_kind = target_kind
        self.target = target

        super().__init__(f"{referrer} refers to missing {target_kind} {target}")


@dataclasses.dataclass(frozen=True)
class BuildError:
    rkey: str
    kind: ErrorKind
    message: str
    level: int = logging.ERROR

    @property
    def is_warning(self) -> bool:
        return self.level < logging.ERROR

    def as_dict(self) -> Dict[str, str]:
        return {
            'rkey': self.rkey,
            'kind': self.kind.value,
            'message': self.message,
            'level': logging.getLevelName(self.level),
        }

    def __str__(self) -> str:
        return f"{self.rkey}: {self.kind.value}: {self.message}"


class BuildErrors:
    """
    Collects the problems found during one build. Nothing here raises:
    every error is recorded, logged at its level, and the build goes on.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self.errors: List[BuildError] = []
        self.notices: Dict[str, List[str]] = {}

    def post_error(self, msg: str, rkey: Optional[str] = None,
                   kind: ErrorKind = ErrorKind.INVALID_BACKEND,
                   log_level: Optional[int] = None) -> BuildError:
        if not rkey:
            rkey = "-global-"

        if log_level is None:
            log_level = logging.WARNING if kind in WARNING_KINDS else logging.ERROR

        error = BuildError(rkey=rkey, kind=kind, message=msg, level=log_level)
        self.errors.append(error)

        self.logger.log(log_level, "%s: %s" % (rkey, msg))
        return error

    def post_notice(self, msg: str, rkey: Optional[str] = None, log_level=logging.DEBUG) -> None:
        if not rkey:
            rkey = "-global-"

        notices = self.notices.setdefault(rkey, [])
        notices.append(msg)

        self.logger.log(log_level, "%s: NOTICE: %s" % (rkey, msg))

    def __iter__(self) -> Iterator[BuildError]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __bool__(self) -> bool:
        return bool(self.errors)
