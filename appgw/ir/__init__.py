from .errors import BuildError, BuildErrors, DanglingReferenceError, ErrorKind
from .document import ConfigurationDocument
from .builder import BuildResult, ConfigBuilder
