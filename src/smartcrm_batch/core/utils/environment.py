# -*- coding: utf-8 -*-

"""
Environment configuration management.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import dotenv

ENV_FILE_NAMES = ('.env.local', '.env')


def get_env_search_paths() -> List[Path]:
    """Candidate .env files: the working directory first, then the project root."""
    roots = [Path.cwd()]
    # src/smartcrm_batch/core/utils -> project root
    project_root = Path(__file__).resolve().parents[4]
    if project_root != Path.cwd():
        roots.append(project_root)
    return [root / name for root in roots for name in ENV_FILE_NAMES]


def load_environment_variables(env_file: Optional[str] = None, verbose: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        env_file: Specific .env file path. If None, the first existing file
            among `get_env_search_paths()` is loaded.
        verbose: Whether to log environment loading details.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    if env_file:
        candidates = [Path(env_file)]
    else:
        candidates = get_env_search_paths()

    for env_path in candidates:
        if env_path.exists():
            dotenv.load_dotenv(env_path)
            if verbose:
                logging.debug(f"Loaded environment from: {env_path}")
            return True

    if verbose:
        if env_file:
            logging.warning(f"Specified .env file not found: {env_file}")
        else:
            logging.debug("No .env file found in search paths")
    return False


def validate_required_env_vars(azure: bool = False) -> List[str]:
    """
    Check that the credentials for the chosen API are set.

    Args:
        azure: Validate Azure OpenAI variables instead of OpenAI ones.

    Returns:
        List of missing environment variables (empty if all present).
    """
    if azure:
        required = ['AZURE_OPENAI_API_KEY', 'AZURE_OPENAI_ENDPOINT']
    else:
        required = ['OPENAI_API_KEY']
    return [var for var in required if not os.getenv(var)]


def setup_environment(verbose: bool = False, env_file: Optional[str] = None) -> bool:
    """
    Set up environment for the package. A missing .env file is not an error;
    the system environment is used instead.

    Returns:
        True if a .env file was loaded.
    """
    env_loaded = load_environment_variables(env_file, verbose)
    if verbose and not env_loaded:
        logging.debug("No .env file loaded. Relying on system environment variables.")
    return env_loaded
