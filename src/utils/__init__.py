"""Cross-cutting utilities (lowest dependency layer).

    fs              YAML loading, atomic G-code writes
    logging_config  console/file logging with context fields
    validators      pydantic schema of the settings file

No module in utils/ may import from laser_raster.
"""

from . import fs
from . import logging_config
from . import validators

from .logging_config import push_context, setup_logging

__all__ = [
    'fs',
    'logging_config',
    'validators',
    'setup_logging',
    'push_context',
]
