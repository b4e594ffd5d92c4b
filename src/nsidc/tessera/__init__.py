__version__ = "v0.1.0"


__all__ = ["__version__", "cli", "config", "constants", "errors", "models", "spatial", "tessera"]

from . import cli
from . import config
from . import constants
from . import errors
from . import models
from . import spatial
from . import tessera
