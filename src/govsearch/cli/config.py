"""Configuration management commands."""

import sys
from pathlib import Path
from typing import Optional

from govsearch.config import SearchConfig, save_config
from govsearch.errors import EXIT_INVALID_ARGS

from .output import print_error, print_info, print_success
from .utils import DEFAULT_CONFIG_PATH


def init_config_command(config_path: Optional[str], force: bool, output_json: bool):
    """Write a config file holding every default, for editing."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if path.exists() and not force:
        print_error(f"Config file already exists: {path} (use --force to overwrite)", output_json)
        sys.exit(EXIT_INVALID_ARGS)

    if path.exists():
        print_info(f"Overwriting {path}", output_json)
    save_config(SearchConfig(), path)
    print_success(f"Wrote default config to {path}", output_json, data={"path": str(path)})
