# anpr_pipeline/logging_config.py
import logging.config
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from .monitoring.trace_log import TraceLogHandler


def setup_logging(config: Optional[Dict[str, Any]] = None,
                  config_path: str = None,
                  trace_handler: Optional[TraceLogHandler] = None):
    """
    Setup logging configuration

    Uses the ``logging`` section of an already loaded config, or reads it from
    ``config_path`` (default config when neither is given). A trace handler,
    when provided, is attached to the package logger.
    """
    if config is None:
        if config_path is None:
            config_path = Path(__file__).parent / 'config' / 'default_config.yaml'
        with open(config_path, encoding='utf-8') as f:
            config = yaml.safe_load(f)

    logging.config.dictConfig(config['logging'])

    package_logger = logging.getLogger('anpr_pipeline')
    if trace_handler is not None:
        package_logger.addHandler(trace_handler)

    return package_logger
