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

from typing import Any, Dict, Optional

import os
import sys

import logging
import traceback

import clize
from clize import Parameter
from pythonjsonlogger import jsonlogger

from appgw import Config, ConfigBuilder, ConfigurationDocument, ResourceCache, ResourceFetcher, Version
from appgw.ir.builder import BuildResult
from appgw.utils import dump_json, parse_bool, parse_json

__version__ = Version

if parse_bool(os.environ.get("APPGW_JSON_LOGGING", "false")):
    jsonFormatter = jsonlogger.JsonFormatter("%%(asctime)s appgw-cli %s %%(levelname)s %%(name)s %%(message)s" % __version__)
    logHandler = logging.StreamHandler()
    logHandler.setFormatter(jsonFormatter)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(logHandler)
else:
    logging.basicConfig(
        level=logging.INFO,
        format="%%(asctime)s appgw-cli %s %%(levelname)s: %%(message)s" % __version__,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

logger = logging.getLogger("appgw")


def handle_exception(what, e, **kwargs):
    tb = "\n".join(traceback.format_exception(*sys.exc_info()))

    logger.error("%s: %s\n%s" % (what, e, tb))


def version():
    """
    Show appgw-ingress's version
    """

    print("appgw-ingress %s" % __version__)


def _build(config_dir_path: str, watt: bool, existing: Optional[str],
           ingress_class: Optional[str]) -> BuildResult:
    config = Config(ingress_class=ingress_class)
    cache = ResourceCache(logging.getLogger("appgw.cache"))
    fetcher = ResourceFetcher(logging.getLogger("appgw.fetch"), config, cache)

    if watt:
        with open(config_dir_path, "r") as f:
            fetcher.parse_watt(f.read())
    else:
        fetcher.load_from_filesystem(config_dir_path, recurse=True)

    current: Optional[ConfigurationDocument] = None

    if existing:
        with open(existing, "r") as f:
            current = ConfigurationDocument.from_dict(parse_json(f.read()))

    snapshot = cache.snapshot()
    builder = ConfigBuilder(config, logging.getLogger("appgw.builder"))

    return builder.build(snapshot.ingresses(), snapshot, existing=current)


def dump(config_dir_path: Parameter.REQUIRED, *,
         watt=False, debug=False, nopretty=False, errors=False,
         existing=None, ingress_class=None):
    """
    Dump the gateway configuration built from a set of Kubernetes resources

    :param config_dir_path: Directory (or file) of Kubernetes YAML manifests to read
    :param watt: If set, input must be a JSON watch snapshot
    :param debug: If set, generate debugging output
    :param nopretty: If set, do not pretty print the dumped JSON
    :param errors: If set, also dump the errors found while building
    :param existing: JSON file holding the gateway's current configuration, whose unmanaged resources are kept
    :param ingress_class: Ingress class to claim, overriding APPGW_INGRESS_CLASS
    """

    if debug:
        logger.setLevel(logging.DEBUG)

    try:
        document, build_errors = _build(config_dir_path, watt, existing, ingress_class)

        od: Dict[str, Any] = document.as_dict()

        if errors:
            od = { 'configuration': od, 'errors': [ e.as_dict() for e in build_errors ] }

        sys.stdout.write(dump_json(od, pretty=not nopretty))
        sys.stdout.write("\n")
    except Exception as e:
        handle_exception("EXCEPTION from dump", e, config_dir_path=config_dir_path)

        # This is fatal.
        sys.exit(1)


def validate(config_dir_path: Parameter.REQUIRED, *, watt=False, ingress_class=None):
    """
    Validate a set of Kubernetes resources, reporting everything that can't be routed

    :param config_dir_path: Directory (or file) of Kubernetes YAML manifests to read
    :param watt: If set, input must be a JSON watch snapshot
    :param ingress_class: Ingress class to claim, overriding APPGW_INGRESS_CLASS
    """

    try:
        result = _build(config_dir_path, watt, None, ingress_class)
    except Exception as e:
        handle_exception("EXCEPTION from validate", e, config_dir_path=config_dir_path)
        sys.exit(1)

    for error in result.errors:
        print("%s: %s" % (logging.getLevelName(error.level), error))

    if not result.ok:
        sys.exit(1)

    print("configuration OK")


def main():
    clize.run([dump, validate], alt=[version],
              description="""
              Build an Application Gateway configuration from Kubernetes Ingresses. Use

              appgw command --help

              for more help, or

              appgw --version

              to see the version.
              """)


if __name__ == "__main__":
    main()
