"""
Burn-in Configuration Management

This module provides configuration defaults, validation, merging and
loading for a burn-in session. The validated result is frozen into a
BurnInSettings instance which is built once per session and handed to
every component.
"""

import copy
import dataclasses
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .exceptions import BurnInConfigError


@dataclass(frozen=True)
class BurnInSettings:
    """
    Immutable process-wide tunables for one burn-in session.

    Durations are in seconds unless the name says otherwise.
    """

    # Output roots
    log_dir: str = './run-logs'
    status_dir: str = './run-status'

    # Shared checkpoint sink
    repo_dir: str = ''
    git_remote: str = ''
    git_branch: str = 'main'
    auto_push: bool = False

    # SMART self-tests
    smart_conveyance: bool = False
    abort_smart: bool = False
    smart_initial_grace: float = 60
    smart_poll_interval: float = 300
    smart_usb_poll_interval: float = 1800
    smart_max_wait: float = 72 * 60 * 60
    smart_abort_settle: float = 2
    smart_abort_retries: int = 0

    # Device resolver
    resolve_attempts: int = 12
    resolve_interval: float = 5

    # Destructive pass
    badblocks: bool = True
    bb_block_size: int = 8192
    bb_batch_blocks: int = 32768
    bb_patterns: str = 'default'

    # Throughput estimate
    eta_sample_mib: int = 2048
    eta_sample_offset_gib: int = 16
    eta_assumed_mib_per_s: int = 200

    # Status store
    log_tail_lines: int = 200

    # Checkpoint publisher
    checkpoint_attempts: int = 10
    checkpoint_lock_wait_min: float = 2
    checkpoint_lock_wait_max: float = 6
    checkpoint_backoff_min: float = 5
    checkpoint_backoff_max: float = 14

    def replace(self, **changes: Any) -> 'BurnInSettings':
        """Return a copy with *changes* applied after validation."""
        BurnInConfig.validate_config(changes)
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


class BurnInConfig:
    """
    Configuration manager for burn-in parameters.

    This class provides:
    - Default configuration values
    - Configuration validation
    - Configuration merging
    - Loading from YAML files and environment variables

    Example:
        >>> config = BurnInConfig.get_default_config()
        >>> config['bb_patterns']
        'default'
        >>> settings = BurnInConfig.build({'bb_patterns': 'single'})
        >>> settings.bb_patterns
        'single'
    """

    DEFAULT_CONFIG: Dict[str, Any] = dataclasses.asdict(BurnInSettings())

    VALID_PARAMS = set(DEFAULT_CONFIG.keys())

    PARAM_TYPES: Dict[str, Any] = {
        'log_dir': str,
        'status_dir': str,
        'repo_dir': str,
        'git_remote': str,
        'git_branch': str,
        'auto_push': bool,
        'smart_conveyance': bool,
        'abort_smart': bool,
        'smart_initial_grace': (int, float),
        'smart_poll_interval': (int, float),
        'smart_usb_poll_interval': (int, float),
        'smart_max_wait': (int, float),
        'smart_abort_settle': (int, float),
        'smart_abort_retries': int,
        'resolve_attempts': int,
        'resolve_interval': (int, float),
        'badblocks': bool,
        'bb_block_size': int,
        'bb_batch_blocks': int,
        'bb_patterns': str,
        'eta_sample_mib': int,
        'eta_sample_offset_gib': int,
        'eta_assumed_mib_per_s': int,
        'log_tail_lines': int,
        'checkpoint_attempts': int,
        'checkpoint_lock_wait_min': (int, float),
        'checkpoint_lock_wait_max': (int, float),
        'checkpoint_backoff_min': (int, float),
        'checkpoint_backoff_max': (int, float),
    }

    PARAM_CONSTRAINTS: Dict[str, Dict[str, Any]] = {
        'smart_initial_grace': {'min': 0},
        'smart_poll_interval': {'min': 0.01},
        'smart_usb_poll_interval': {'min': 0.01},
        'smart_max_wait': {'min': 1},
        'smart_abort_settle': {'min': 0},
        'smart_abort_retries': {'min': 0, 'max': 5},
        'resolve_attempts': {'min': 1, 'max': 1000},
        'resolve_interval': {'min': 0},
        'bb_block_size': {'min': 512, 'max': 1048576},
        'bb_batch_blocks': {'min': 1},
        'bb_patterns': {'choices': ['default', 'single']},
        'eta_sample_mib': {'min': 1},
        'eta_sample_offset_gib': {'min': 0},
        'eta_assumed_mib_per_s': {'min': 1},
        'log_tail_lines': {'min': 1, 'max': 10000},
        'checkpoint_attempts': {'min': 1, 'max': 100},
        'checkpoint_lock_wait_min': {'min': 0},
        'checkpoint_lock_wait_max': {'min': 0},
        'checkpoint_backoff_min': {'min': 0},
        'checkpoint_backoff_max': {'min': 0},
        'git_branch': {'pattern': r'^[A-Za-z0-9._/-]+$'},
    }

    # Environment variable names understood by the shell-era tool
    ENV_VARS: Dict[str, str] = {
        'LOG_DIR': 'log_dir',
        'STATUS_DIR': 'status_dir',
        'REPO_DIR': 'repo_dir',
        'GIT_REMOTE': 'git_remote',
        'GIT_BRANCH': 'git_branch',
        'AUTO_PUSH': 'auto_push',
        'SMART_CONVEYANCE': 'smart_conveyance',
        'BADBLOCKS': 'badblocks',
        'BB_BLOCK_SIZE': 'bb_block_size',
        'BB_BATCH_BLOCKS': 'bb_batch_blocks',
        'BB_PATTERNS': 'bb_patterns',
        'ETA_SAMPLE_MIB': 'eta_sample_mib',
        'ETA_SAMPLE_OFFSET_GIB': 'eta_sample_offset_gib',
    }

    @classmethod
    def get_default_config(cls) -> Dict[str, Any]:
        """
        Return a deep copy of the default configuration.

        Returns:
            Dict[str, Any]: Mutable copy of DEFAULT_CONFIG.
        """
        return copy.deepcopy(cls.DEFAULT_CONFIG)

    @classmethod
    def validate_config(cls, config: Mapping[str, Any]) -> bool:
        """
        Validate configuration parameters.

        Checks:
        - Parameter names are valid
        - Parameter types are correct
        - Parameter values are within acceptable ranges

        Args:
            config: Configuration dict to validate.

        Returns:
            True if valid.

        Raises:
            BurnInConfigError: If any parameter is unknown, has the wrong
                type, or violates its constraint.

        Example:
            >>> BurnInConfig.validate_config({'bb_block_size': 4096})
            True
            >>> BurnInConfig.validate_config({'bb_patterns': 'triple'})
            Traceback (most recent call last):
            ...
            burnin_kit.exceptions.BurnInConfigError: bb_patterns must be one of ['default', 'single']
        """
        for key, value in config.items():
            if key not in cls.VALID_PARAMS:
                raise BurnInConfigError(f"Unknown configuration parameter: {key}")

            expected_type = cls.PARAM_TYPES.get(key)
            if expected_type is not None:
                # bool is an int subclass; only accept it where bool is expected
                if isinstance(value, bool) and expected_type is not bool:
                    raise BurnInConfigError(
                        f"{key} must be of type {cls._type_name(expected_type)}, got bool"
                    )
                if not isinstance(value, expected_type):
                    raise BurnInConfigError(
                        f"{key} must be of type {cls._type_name(expected_type)}, "
                        f"got {type(value).__name__}"
                    )

            constraints = cls.PARAM_CONSTRAINTS.get(key)
            if not constraints:
                continue
            if 'min' in constraints and value < constraints['min']:
                raise BurnInConfigError(f"{key} must be >= {constraints['min']}")
            if 'max' in constraints and value > constraints['max']:
                raise BurnInConfigError(f"{key} must be <= {constraints['max']}")
            if 'choices' in constraints and value not in constraints['choices']:
                raise BurnInConfigError(f"{key} must be one of {constraints['choices']}")
            if 'pattern' in constraints and not re.match(constraints['pattern'], str(value)):
                raise BurnInConfigError(f"{key} must match pattern {constraints['pattern']}")

        return True

    @classmethod
    def merge_config(cls, base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Merge override values into a base config.

        Args:
            base: Base configuration dict.
            overrides: Values to override (must pass validation).

        Returns:
            New merged configuration dict.

        Raises:
            BurnInConfigError: If overrides contain invalid parameters.
        """
        cls.validate_config(overrides)
        merged = copy.deepcopy(base)
        merged.update(overrides)
        return merged

    @classmethod
    def load_config_file(cls, path: str) -> Dict[str, Any]:
        """
        Load overrides from a YAML configuration file.

        Expected format::

            burnin:
              log_dir: /var/log/burnin
              repo_dir: /srv/burnin-status
              auto_push: true
              bb_patterns: single

        Args:
            path: Path to the YAML file.

        Returns:
            Validated override dictionary (may be empty).

        Raises:
            BurnInConfigError: If the file is missing, malformed, or has no
                ``burnin`` section.
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise BurnInConfigError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise BurnInConfigError(f"Invalid YAML in {path}: {e}")

        if not isinstance(data, dict) or 'burnin' not in data:
            raise BurnInConfigError(f"'burnin' section not found in {path}")

        section = data['burnin'] or {}
        if not isinstance(section, dict):
            raise BurnInConfigError(f"'burnin' section in {path} must be a mapping")

        cls.validate_config(section)
        return dict(section)

    @classmethod
    def save_config_file(cls, settings: BurnInSettings, path: str) -> Path:
        """Write *settings* as a loadable YAML file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'burnin': settings.to_dict()}, f, default_flow_style=False, sort_keys=True)
        return target

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """
        Collect overrides from environment variables.

        Only the names in ENV_VARS are read. Values are converted to the
        parameter's type; booleans accept ``1/0``, ``true/false``,
        ``yes/no`` and ``on/off``.

        Raises:
            BurnInConfigError: If a value cannot be converted.
        """
        if environ is None:
            environ = os.environ

        overrides: Dict[str, Any] = {}
        for env_name, key in cls.ENV_VARS.items():
            raw = environ.get(env_name)
            if raw is None or raw == '':
                continue
            overrides[key] = cls._convert(key, raw, env_name)

        cls.validate_config(overrides)
        return overrides

    @classmethod
    def build(cls, *layers: Optional[Mapping[str, Any]]) -> BurnInSettings:
        """
        Merge override layers over the defaults and freeze the result.

        Later layers win. ``None`` layers are skipped.

        Example:
            >>> BurnInConfig.build(
            ...     BurnInConfig.from_environment(),
            ...     {'bb_patterns': 'single'},
            ... ).bb_patterns
            'single'
        """
        config = cls.get_default_config()
        for layer in layers:
            if layer:
                config = cls.merge_config(config, layer)
        return BurnInSettings(**config)

    @staticmethod
    def convert_str_to_bool(value: str) -> bool:
        """Convert an environment/INI style string to bool."""
        lowered = value.strip().lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off'):
            return False
        raise ValueError(f"not a boolean: {value!r}")

    @classmethod
    def _convert(cls, key: str, raw: str, source: str) -> Any:
        expected = cls.PARAM_TYPES[key]
        try:
            if expected is bool:
                return cls.convert_str_to_bool(raw)
            if expected is int:
                return int(raw)
            if expected == (int, float):
                return float(raw)
            return raw
        except ValueError as e:
            raise BurnInConfigError(f"{source}={raw!r} is not valid for {key}: {e}")

    @staticmethod
    def _type_name(expected: Any) -> str:
        if isinstance(expected, tuple):
            return '/'.join(t.__name__ for t in expected)
        return expected.__name__
