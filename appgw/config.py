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

from typing import TYPE_CHECKING, ClassVar, Optional

import logging
import os

from .utils import parse_bool

if TYPE_CHECKING:
    from .fetch.k8sobject import KubernetesObject  # pragma: no cover


def _env_seconds(name: str, default: float) -> float:
    value = os.environ.get(name)

    if not value:
        return default

    try:
        return float(value)
    except ValueError:
        logging.getLogger("appgw.config").error(
            "%s: could not parse %r as seconds, using %s" % (name, value, default)
        )
        return default


class Config:
    # CLASS VARIABLES
    # Only Ingresses with this class (annotation or spec.ingressClassName) are ours.
    ingress_class: ClassVar[str] = os.environ.get("APPGW_INGRESS_CLASS", "azure/application-gateway")
    watch_namespace: ClassVar[Optional[str]] = os.environ.get("APPGW_WATCH_NAMESPACE") or None
    log_resources: ClassVar[bool] = parse_bool(os.environ.get("APPGW_LOG_RESOURCES"))
    resync_period: ClassVar[float] = _env_seconds("APPGW_RESYNC_SECONDS", 30.0)

    # Every gateway object we own starts with this prefix. Changing it orphans
    # everything already on the gateway, so it is not configurable.
    name_prefix: ClassVar[str] = "k8s-ag-ingress"

    # Probe host for rules that don't specify one.
    fallback_host: ClassVar[str] = "localhost"

    # Annotation namespace for per-Ingress gateway settings.
    annotation_prefix: ClassVar[str] = "appgw.ingress.kubernetes.io/"

    def __init__(self, ingress_class: Optional[str] = None,
                 watch_namespace: Optional[str] = None) -> None:
        self.logger = logging.getLogger("appgw.config")

        # Instance overrides, mostly for tests and the CLI.
        if ingress_class is not None:
            self.ingress_class = ingress_class

        if watch_namespace is not None:
            self.watch_namespace = watch_namespace or None

    def __str__(self) -> str:
        return "<Config: class %s, namespace %s, prefix %s>" % (
            self.ingress_class, self.watch_namespace or "*", self.name_prefix
        )

    def admit_namespace(self, namespace: Optional[str]) -> bool:
        if self.watch_namespace and namespace != self.watch_namespace:
            return False

        return True

    def admit_ingress(self, obj: 'KubernetesObject') -> bool:
        """
        Is this Ingress one of ours? It must carry our class, either in the
        legacy kubernetes.io/ingress.class annotation or in spec.ingressClassName,
        and live in the watched namespace (if any).
        """

        ingress_class = obj.annotations.get("kubernetes.io/ingress.class")

        if ingress_class is None:
            ingress_class = obj.spec.get("ingressClassName")

        if (ingress_class or "").lower() != self.ingress_class.lower():
            self.logger.debug(
                f"ignoring Ingress {obj.name} with class {ingress_class!r} (want {self.ingress_class})"
            )
            return False

        if not self.admit_namespace(obj.namespace):
            self.logger.debug(f"ignoring Ingress {obj.name}.{obj.namespace} outside {self.watch_namespace}")
            return False

        return True
