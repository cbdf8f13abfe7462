"""Simple YAML configuration loader for longscribe."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..models.backends import BackendConfigurations, BackendKind
from ..models.policy import TranscriptionPolicy

logger = logging.getLogger(__name__)


class LongscribeConfig:
    """longscribe configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, looks for longscribe.yaml
                        in the current directory.
        """
        self.config_file = Path(config_path or "longscribe.yaml")

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        # Resolve relative paths
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        def resolve(section: Dict[str, Any], key: str) -> None:
            value = section.get(key)
            if value and not os.path.isabs(value):
                section[key] = str(config_dir / value)

        backends = config.get('backends') or {}
        for name in ('recognizer', 'cloud_batch'):
            if isinstance(backends.get(name), dict):
                resolve(backends[name], 'credentials_path')
        if isinstance(backends.get('on_device_model'), dict):
            resolve(backends['on_device_model'], 'model_path')

        if isinstance(config.get('storage'), dict):
            resolve(config['storage'], 'data_directory')
            resolve(config['storage'], 'ledger_file')
            resolve(config['storage'], 'temp_directory')

        if isinstance(config.get('logging'), dict):
            resolve(config['logging'], 'file_path')

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'backends.recognizer.language_code').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_ledger_path(self) -> str:
        """Get the path of the pending-job ledger file."""
        ledger_file = self.get('storage.ledger_file')
        if ledger_file:
            return str(Path(ledger_file).absolute())
        return str(Path(self.get_data_directory()) / "pending_jobs.json")

    def get_backend_configurations(self) -> BackendConfigurations:
        """Build typed backend configuration from the 'backends' section."""
        return BackendConfigurations.model_validate(self.get('backends') or {})

    def get_policy(self) -> TranscriptionPolicy:
        """Build the orchestration policy from the 'transcription.policy' section."""
        return TranscriptionPolicy.model_validate(self.get('transcription.policy') or {})

    def get_default_backend(self) -> BackendKind:
        """Get the preferred backend - CRASHES on an unknown backend name."""
        name = self.get('transcription.default_backend', BackendKind.RECOGNIZER.value)
        try:
            return BackendKind(name)
        except ValueError:
            valid = ", ".join(kind.value for kind in BackendKind)
            raise ValueError(f"Unknown transcription backend '{name}' (expected one of: {valid})")
