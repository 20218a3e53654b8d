# -*- coding: utf-8 -*-

import os
import json
from pathlib import Path

import yaml


#=======================================================================
# JSON Lines Utilities
#=======================================================================

def write_jsonl(records, path):
    """
    Write dictionaries to a JSON Lines file, one object per line.
    Values JSON cannot encode natively (dates, paths) are written as strings.
    """
    with open(path, 'w', encoding='utf-8') as f:
        for record in records:
            f.write(json.dumps(record, default=str) + '\n')


def read_jsonl(path):
    """
    Read a JSON Lines file into a list of dictionaries, skipping blank lines.
    """
    with open(path, 'r', encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


#=======================================================================
# YAML Utilities
#=======================================================================

def read_yaml(path):
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f)


def write_yaml(data, path):
    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(data, f, sort_keys=False)


#=======================================================================
# Path Utilities
#=======================================================================

def mask_path(path, base_dir=None):
    """
    Shorten a path for log messages.

    The path is shown relative to `base_dir` (or $PROJECT_DIR) when it lies
    below it, with the home directory abbreviated to "~" otherwise.

    Args:
        path (str | Path): Path to display.
        base_dir (str, optional): Directory to show the path relative to.

    Returns:
        str: Display form of the path.
    """
    path = Path(path)
    base_dir = base_dir or os.getenv('PROJECT_DIR')
    if base_dir:
        try:
            return str(path.relative_to(base_dir))
        except ValueError:
            pass

    home = Path.home()
    if path.is_relative_to(home):
        return f"~/{path.relative_to(home)}"
    return str(path)
