from .VERSION import Version, Commit

from .config import Config
from .fetch import ResourceCache, ResourceFetcher
from .ir import BuildResult, ConfigBuilder, ConfigurationDocument
from .reconciler import GatewayClient, Reconciler
