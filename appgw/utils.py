#!/usr/bin/env python

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

import hashlib
import logging
from typing import Any, Optional, Union

import durationpy
import orjson
import yaml

logger = logging.getLogger("appgw.utils")

# XXX There doesn't seem to be a way to convince mypy that SafeLoader and
# CSafeLoader share a base class, even though they do.

yaml_loader: Any = yaml.SafeLoader

try:
    yaml_loader = yaml.CSafeLoader
except AttributeError:
    pass


yaml_logged_loader = False


def parse_yaml(serialization: str) -> Any:
    global yaml_logged_loader

    if not yaml_logged_loader:
        yaml_logged_loader = True
        logger.debug("YAML: using %s parser" % ("Python" if (yaml_loader == yaml.SafeLoader) else "C"))

    return list(yaml.load_all(serialization, Loader=yaml_loader))


def parse_json(serialization: Union[str, bytes]) -> Any:
    return orjson.loads(serialization)


def dump_json(obj: Any, pretty=False) -> str:
    # Keys are always sorted so that equal objects serialize to equal bytes.
    if pretty:
        return bytes.decode(
            orjson.dumps(
                obj, option=orjson.OPT_NON_STR_KEYS | orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2
            )
        )
    else:
        return bytes.decode(
            orjson.dumps(obj, option=orjson.OPT_NON_STR_KEYS | orjson.OPT_SORT_KEYS)
        )


_TRUE_STRINGS = frozenset(["y", "yes", "t", "true", "on", "1", "enabled"])
_FALSE_STRINGS = frozenset(["n", "no", "f", "false", "off", "0", "disabled"])


def parse_flag(s: Optional[Union[str, bool]]) -> Optional[bool]:
    """
    Parse a boolean value strictly: returns None if the value can't be
    understood as either True or False.
    """

    if isinstance(s, bool):
        return s

    if s is None:
        return None

    value = str(s).strip().lower()

    if value in _TRUE_STRINGS:
        return True
    elif value in _FALSE_STRINGS:
        return False

    return None


def parse_bool(s: Optional[Union[str, bool]]) -> bool:
    """
    Parse a boolean value from a string. T, True, Y, y, 1 return True;
    other things return False.
    """

    # If we didn't get anything at all, return False.
    if not s:
        return False

    return bool(parse_flag(s))


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration, returning seconds. Bare numbers are taken as seconds;
    strings may use Go-style units ("15s", "1m30s").

    Raises ValueError if the duration can't be parsed.
    """

    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")

    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()

    if not text:
        raise ValueError("empty duration")

    try:
        return float(text)
    except ValueError:
        pass

    try:
        return durationpy.from_str(text).total_seconds()
    except Exception as e:
        raise ValueError(f"invalid duration {value!r}: {e}")


def digest(*parts: str, length: int = 8) -> str:
    # Yes, we're using a cryptographic hash here. It only has to be stable.
    h = hashlib.new("sha1")

    for part in parts:
        h.update(part.encode("utf-8"))
        h.update(b"\x00")

    return h.hexdigest()[:length]
