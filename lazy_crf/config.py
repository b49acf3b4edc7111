"""Configuration management for lazy-crf."""

import os
from pathlib import Path
from typing import Optional, Dict, Any


def load_env_file(env_path: Optional[Path] = None) -> Dict[str, str]:
    """Load environment variables from .env file."""
    if env_path is None:
        # Look for .env in current directory, then in package directory
        candidates = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for candidate in candidates:
            if candidate.exists():
                env_path = candidate
                break

    env_vars = {}

    if env_path and env_path.exists():
        with open(env_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    if '=' in line:
                        key, value = line.split('=', 1)
                        env_vars[key.strip()] = value.strip()

    return env_vars


def _setting(env_vars: Dict[str, str], key: str, default: str) -> str:
    return env_vars.get(key, os.getenv(key.upper(), default))


def get_config(env_path: Optional[Path] = None) -> Dict[str, Any]:
    """Get configuration from .env file, environment variables and defaults."""
    env_vars = load_env_file(env_path)

    config = {
        'min_vmaf': float(_setting(env_vars, 'min_vmaf', '95.0')),
        'max_encoded_percent': float(_setting(env_vars, 'max_encoded_percent', '80.0')),
        'min_crf': int(_setting(env_vars, 'min_crf', '10')),
        'max_crf': int(_setting(env_vars, 'max_crf', '55')),
        'samples': int(_setting(env_vars, 'samples', '3')),
        'sample_duration': int(_setting(env_vars, 'sample_duration', '20')),
        'encoder': _setting(env_vars, 'encoder', 'libsvtav1'),
        'vmaf_threads': int(_setting(env_vars, 'vmaf_threads', str(min(8, os.cpu_count() or 8)))),
        'debug': _setting(env_vars, 'debug', 'false').lower() in ('true', '1', 'yes'),
    }

    return config
