"""Application configuration module for the LTF translator."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from ltf_translator.logging_config import setup_logger
from ltf_translator.placeholder_sanitizer import NewlineMode
from ltf_translator.retry_policy import DEFAULT_MAX_ATTEMPTS
from ltf_translator.translation_scheduler import (
    TRANSLATE_ALL_SCHEDULE,
    TRANSLATE_PAGE_SCHEDULE,
    ScheduleSettings,
    TranslatorSettings
)
from ltf_translator.rejection_classifier import RejectionClassifier


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str

    # Model configuration
    model_name: str
    temperature: float

    # Language configuration
    target_language: str
    language_name: str

    # Processing settings
    dry_run: bool
    max_attempts: int
    retry_base_delay: float
    newline_mode: NewlineMode
    items_per_page: int
    translate_all: ScheduleSettings
    translate_page: ScheduleSettings
    batch_requests: bool
    max_concurrent_api_calls: int
    requests_per_minute: Optional[int]

    # Rejection detection
    rejection_keywords: List[str]
    rejection_patterns: List[str]

    # OpenAI client
    openai_client: Optional[AsyncOpenAI]

    def translator_settings(self) -> TranslatorSettings:
        """Build the scheduler settings described by this configuration."""
        return TranslatorSettings(
            max_attempts=self.max_attempts,
            newline_mode=self.newline_mode,
            target_language=self.target_language,
            translate_all=self.translate_all,
            translate_page=self.translate_page,
            items_per_page=self.items_per_page,
            batch_requests=self.batch_requests,
            retry_base_delay=self.retry_base_delay,
            classifier=RejectionClassifier(self.rejection_keywords, self.rejection_patterns)
        )


def _compute_project_root() -> str:
    """Compute the project root directory."""
    script_real_path = os.path.realpath(__file__)
    script_dir = os.path.dirname(script_real_path)
    return os.path.abspath(os.path.join(script_dir, os.pardir))


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to an empty configuration."""
    # If TRANSLATOR_CONFIG_FILE is set (potentially from .env), use it; otherwise, default to 'config.yaml'.
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('TRANSLATOR_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a config.yaml file in '{project_root}' or set TRANSLATOR_CONFIG_FILE environment variable.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
                print(f"Successfully loaded configuration from: {config_file}", file=sys.stderr)
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except (OSError, IOError) as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {})
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/ltf_translator.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    """Log the status of .env file loading."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.info(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def _build_schedule(section: Any, default: ScheduleSettings) -> ScheduleSettings:
    """Build batch settings from a ``{batch_size, concurrent_batches}`` mapping."""
    if not isinstance(section, dict):
        return default
    return ScheduleSettings(
        batch_size=int(section.get('batch_size', default.batch_size)),
        concurrent_batches=int(section.get('concurrent_batches', default.concurrent_batches))
    )


def _create_openai_client(dry_run: bool, logger: logging.Logger) -> Optional[AsyncOpenAI]:
    """Create OpenAI client if not in dry run mode."""
    if dry_run:
        logger.info("Running in dry-run mode, OpenAI client will not be initialized")
        return None

    api_key_from_env = os.environ.get('OPENAI_API_KEY')
    if not api_key_from_env:
        logger.critical("CRITICAL: OPENAI_API_KEY environment variable not found.")
        logger.critical("Please set OPENAI_API_KEY or enable dry_run mode in configuration.")
        logger.critical("For dry-run mode, set 'dry_run: true' in your config file or pass --dry-run.")
        sys.exit(1)

    if not api_key_from_env.startswith('sk-'):
        logger.warning("Warning: OPENAI_API_KEY does not start with 'sk-'. This may be invalid.")

    try:
        client = AsyncOpenAI(api_key=api_key_from_env)
        logger.info("OpenAI client initialized successfully")
        return client
    except Exception as e:
        logger.critical("Failed to initialize OpenAI client: %s", str(e))
        logger.critical("Please check your OPENAI_API_KEY and network connectivity.")
        sys.exit(1)


def load_app_config(dry_run_override: Optional[bool] = None) -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Args:
        dry_run_override: Forces dry-run mode on or off regardless of the file.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()
    _load_dotenv_files(project_root)
    config = _load_yaml_config(project_root)
    logger = _setup_logger_from_config(config)
    _log_dotenv_status(logger, project_root)

    dry_run = config.get('dry_run', False) if dry_run_override is None else dry_run_override
    model_name = os.environ.get('MODEL_NAME', config.get('model_name', 'gpt-4o-mini'))
    max_attempts = int(os.environ.get('MAX_TRANSLATION_ATTEMPTS', config.get('max_attempts', DEFAULT_MAX_ATTEMPTS)))
    newline_mode = NewlineMode.from_config(config.get('newline_mode', NewlineMode.SPACE.value))

    rejection_config = config.get('rejection', {}) or {}
    requests_per_minute = config.get('requests_per_minute')

    openai_client = _create_openai_client(dry_run, logger)

    return AppConfig(
        project_root=project_root,
        model_name=model_name,
        temperature=float(config.get('temperature', 0.3)),
        target_language=config.get('target_language', 'Indonesian'),
        language_name=config.get('language_name', 'Bahasa Indonesia'),
        dry_run=dry_run,
        max_attempts=max_attempts,
        retry_base_delay=float(config.get('retry_base_delay', 0.0)),
        newline_mode=newline_mode,
        items_per_page=int(config.get('items_per_page', 50)),
        translate_all=_build_schedule(config.get('translate_all'), TRANSLATE_ALL_SCHEDULE),
        translate_page=_build_schedule(config.get('translate_page'), TRANSLATE_PAGE_SCHEDULE),
        batch_requests=bool(config.get('batch_requests', False)),
        max_concurrent_api_calls=int(config.get('max_concurrent_api_calls', 16)),
        requests_per_minute=int(requests_per_minute) if requests_per_minute else None,
        rejection_keywords=list(rejection_config.get('keywords', []) or []),
        rejection_patterns=list(rejection_config.get('patterns', []) or []),
        openai_client=openai_client
    )
