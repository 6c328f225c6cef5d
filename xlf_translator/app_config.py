"""Application configuration module for the XLF translator."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

import yaml
from dotenv import load_dotenv
from openai import OpenAI

from xlf_translator.exceptions import ConfigurationError
from xlf_translator.logging_config import setup_logger
from xlf_translator.machine_translator import DEFAULT_PLACEHOLDER_PATTERNS, MachineTranslator
from xlf_translator.microsoft_translator import CATEGORY_GENERAL, GLOBAL_BASE_URL, MicrosoftTranslator
from xlf_translator.openai_translator import DEFAULT_MODEL_NAME, OpenAITranslator
from xlf_translator.xlf_translator import (
    DEFAULT_MAX_FAILURES,
    FAILURE_BUDGET_CUMULATIVE,
    FILENAME_POLICY_STRICT,
    TranslationJob,
)

PROVIDER_MICROSOFT = "microsoft"
PROVIDER_OPENAI = "openai"


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str
    source_dir: str
    summary_report_path: Optional[str]

    # Run settings
    job: TranslationJob

    # Translation provider
    provider: str
    translator: MachineTranslator


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


def _load_yaml_config(project_root: str, config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load YAML configuration file with error handling and path resolution."""
    # An explicit path wins, then TRANSLATOR_CONFIG_FILE, then config.yaml in the project root.
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = config_path or os.environ.get('TRANSLATOR_CONFIG_FILE', default_config_path)

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
    log_file_path = log_config.get('log_file_path', 'logs/xlf_translator.log')
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


def _build_language_mappings(locales_list: List[Dict[str, str]]) -> Dict[str, str]:
    """Build the code to language name mapping from supported locales."""
    language_codes: Dict[str, str] = {}

    for locale in locales_list:
        code = locale.get('code')
        name = locale.get('name')
        if code and name:
            language_codes[code] = name

    return language_codes


def _apply_environment_overrides(config: Dict[str, Any]) -> None:
    """Environment variables override the file for the settings that vary per machine."""
    if os.environ.get('XLF_SOURCE_DIR'):
        config['source_dir'] = os.environ['XLF_SOURCE_DIR']
    if os.environ.get('XLF_SOURCE_LOCALE'):
        config['source_locale'] = os.environ['XLF_SOURCE_LOCALE']


def _as_tuple(value: Any) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _build_job(config: Dict[str, Any]) -> TranslationJob:
    """Build the TranslationJob from the configuration dictionary."""
    excluded_locales = config.get('excluded_locales')
    translator_config = config.get('translator', {}) or {}

    return TranslationJob(
        source_locale=config.get('source_locale', 'en_GB'),
        locales=_as_tuple(config.get('locales')),
        excluded_locales=None if excluded_locales is None else _as_tuple(excluded_locales),
        catalogues=_as_tuple(config.get('catalogues')),
        new_only=bool(config.get('new_only', False)),
        commit=not bool(config.get('dry_run', False)),
        memory=bool(config.get('memory', False)),
        output_translated=bool(config.get('output_translated', False)),
        filename_policy=config.get('filename_policy', FILENAME_POLICY_STRICT),
        max_failures=int(config.get('max_failures', DEFAULT_MAX_FAILURES)),
        failure_budget=config.get('failure_budget', FAILURE_BUDGET_CUMULATIVE),
        file_extension=config.get('file_extension', '.xlf'),
        translate_options=dict(translator_config.get('options', {}) or {}),
        placeholder_patterns=tuple(translator_config.get('placeholder_patterns', DEFAULT_PLACEHOLDER_PATTERNS)),
        show_progress=bool(config.get('show_progress', True)),
    )


def _create_microsoft_translator(translator_config: Dict[str, Any], logger: logging.Logger) -> MicrosoftTranslator:
    subscription_key = os.environ.get('MICROSOFT_SUBSCRIPTION_KEY')
    if not subscription_key:
        logger.critical("CRITICAL: MICROSOFT_SUBSCRIPTION_KEY environment variable not found.")
        logger.critical("Please set MICROSOFT_SUBSCRIPTION_KEY to the secret key of your Translator subscription.")
        sys.exit(1)

    try:
        translator = MicrosoftTranslator(
            subscription_key,
            region=os.environ.get('MICROSOFT_SUBSCRIPTION_REGION', translator_config.get('region', 'global')),
            base_url=translator_config.get('base_url', GLOBAL_BASE_URL),
            max_retries=int(translator_config.get('max_retries', 3)),
            timeout=float(translator_config.get('timeout', 30.0)),
            category=translator_config.get('category', CATEGORY_GENERAL),
        )
    except ConfigurationError as e:
        logger.critical("CRITICAL: %s", e)
        sys.exit(1)

    excluded_words_file = translator_config.get('excluded_words_file')
    if excluded_words_file:
        try:
            translator.set_excluded_words_from_file(excluded_words_file)
        except (OSError, ValueError) as e:
            logger.critical("Failed to load excluded words from '%s': %s", excluded_words_file, e)
            sys.exit(1)
    elif translator_config.get('excluded_words'):
        translator.set_excluded_words(translator_config['excluded_words'])

    return translator


def _create_openai_translator(config: Dict[str, Any], translator_config: Dict[str, Any],
                              logger: logging.Logger) -> OpenAITranslator:
    api_key_from_env = os.environ.get('OPENAI_API_KEY')
    if not api_key_from_env:
        logger.critical("CRITICAL: OPENAI_API_KEY environment variable not found.")
        logger.critical("Please set OPENAI_API_KEY or choose another translator provider.")
        sys.exit(1)

    if not api_key_from_env.startswith('sk-'):
        logger.warning("Warning: OPENAI_API_KEY does not start with 'sk-'. This may be invalid.")

    try:
        client = OpenAI(api_key=api_key_from_env)
    except Exception as e:
        logger.critical("Failed to initialize OpenAI client: %s", str(e))
        sys.exit(1)

    language_codes = _build_language_mappings(config.get('supported_locales', []))
    return OpenAITranslator(
        client,
        model_name=os.environ.get('OPENAI_MODEL_NAME', translator_config.get('model_name', DEFAULT_MODEL_NAME)),
        language_codes=language_codes or None,
        max_retries=int(translator_config.get('max_retries', 5)),
    )


def _create_translator(config: Dict[str, Any], logger: logging.Logger) -> MachineTranslator:
    """Create the machine translator named in the configuration, exiting on configuration errors."""
    translator_config = config.get('translator', {}) or {}
    provider = str(translator_config.get('provider', PROVIDER_MICROSOFT)).lower()

    if provider == PROVIDER_MICROSOFT:
        translator = _create_microsoft_translator(translator_config, logger)
    elif provider == PROVIDER_OPENAI:
        translator = _create_openai_translator(config, translator_config, logger)
    else:
        logger.critical("CRITICAL: Unknown translator provider '%s'. Use '%s' or '%s'.",
                        provider, PROVIDER_MICROSOFT, PROVIDER_OPENAI)
        sys.exit(1)

    if translator_config.get('locale_map'):
        translator.set_locale_map(translator_config['locale_map'])
    if translator_config.get('placeholder_patterns'):
        translator.set_placeholder_patterns(translator_config['placeholder_patterns'])

    logger.info("%s translator initialized successfully", translator.provider)
    return translator


def load_app_config(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Args:
        config_path: Optional explicit path to the YAML configuration file.
        overrides: Top-level settings that replace the values from the file
            (used by the command line).

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root, config_path)
    _apply_environment_overrides(config)
    if overrides:
        config.update({key: value for key, value in overrides.items() if value is not None})

    logger = _setup_logger_from_config(config)

    _log_dotenv_status(logger, project_root)

    try:
        job = _build_job(config)
    except (TypeError, ValueError) as e:
        logger.critical("CRITICAL: Invalid translation settings: %s", e)
        sys.exit(1)

    source_dir = config.get('source_dir', 'translations')
    if not os.path.isdir(source_dir):
        logger.critical("CRITICAL: Source directory '%s' does not exist.", source_dir)
        sys.exit(1)

    translator = _create_translator(config, logger)

    return AppConfig(
        project_root=project_root,
        source_dir=source_dir,
        summary_report_path=config.get('summary_report_path'),
        job=job,
        provider=translator.provider,
        translator=translator,
    )
