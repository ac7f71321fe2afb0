import yaml
import os
import shutil
import logging
from typing import Any, Mapping, Optional
from dotenv import load_dotenv

from utils.constants import VOLUME_DEFAULT, VOLUME_MAX, VOLUME_MIN

"""
Module de gestion de la configuration du bot.

Ce module charge la configuration depuis les variables d'environnement
(fichier .env) et, s'il existe, depuis config/config.yaml, puis normalise
les valeurs utilisées par le bot.
"""

LOOP_MODES = ('off', 'track', 'queue')
TRUE_VALUES = ('1', 'true', 'yes', 'on')

CONFIG_KEYS = (
    ('port', 'PORT'),
    ('bot_token', 'DISCORD_TOKEN'),
    ('ffmpeg_path', 'FFMPEG_PATH'),
    ('cookie_file', 'YTDLP_COOKIES_PATH'),
    ('log_dir', 'LOG_DIR'),
    ('data_dir', 'DATA_DIR'),
    ('debug_ffmpeg', 'DEBUG_FFMPEG'),
    ('default_volume', 'DEFAULT_VOLUME'),
    ('default_loop', 'DEFAULT_LOOP_MODE'),
    ('timezone_offset_hours', 'TIMEZONE_OFFSET_HOURS'),
    ('force_ipv4', 'YTDLP_FORCE_IPV4'),
    ('auto_update', 'YTDLP_AUTO_UPDATE'),
    ('log_level', 'LOG_LEVEL'),
)


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def _as_int(value: Any, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def find_ffmpeg(explicit: Optional[str] = None) -> str:
    """
    Get the FFmpeg path: explicit setting first, then PATH, then the bare name.
    """
    logger = logging.getLogger(__name__)

    if explicit:
        if os.path.exists(explicit) or shutil.which(explicit):
            return explicit
        logger.warning(f"FFmpeg not found at {explicit}, falling back to PATH lookup")

    found = shutil.which('ffmpeg')
    if found:
        return found

    logger.error("FFmpeg not found on PATH, tracks will fail to start")
    return 'ffmpeg.exe' if os.name == 'nt' else 'ffmpeg'


def build_config(env: Mapping[str, str]) -> dict:
    """
    Build the bot configuration from an environment mapping.

    Args:
        env: os.environ or any mapping of environment variables

    Returns:
        dict: normalised configuration (see CONFIG_KEYS for the sources)
    """
    cwd = os.getcwd()
    default_loop = str(env.get('DEFAULT_LOOP_MODE') or 'off').strip().lower()
    return {
        'port': _as_int(env.get('PORT'), 3000),
        'bot_token': env.get('DISCORD_TOKEN') or env.get('TOKEN') or '',
        'ffmpeg_path': env.get('FFMPEG_PATH') or None,
        'cookie_file': env.get('YTDLP_COOKIES_PATH') or None,
        'log_dir': env.get('LOG_DIR') or os.path.join(cwd, 'logs'),
        'data_dir': env.get('DATA_DIR') or os.path.join(cwd, 'data'),
        'debug_ffmpeg': _as_bool(env.get('DEBUG_FFMPEG'), False),
        'default_volume': max(VOLUME_MIN, min(VOLUME_MAX, _as_int(env.get('DEFAULT_VOLUME'), VOLUME_DEFAULT))),
        'default_loop': default_loop if default_loop in LOOP_MODES else 'off',
        'timezone_offset_hours': _as_float(env.get('TIMEZONE_OFFSET_HOURS'), 7.0),
        'force_ipv4': _as_bool(env.get('YTDLP_FORCE_IPV4'), True),
        'auto_update': _as_bool(env.get('YTDLP_AUTO_UPDATE'), True),
        'log_level': str(env.get('LOG_LEVEL') or 'INFO').upper(),
    }


def normalize_config(config: dict) -> dict:
    """Re-apply bounds after values were overridden from YAML."""
    defaults = build_config({})
    config['port'] = _as_int(config.get('port'), defaults['port'])
    config['default_volume'] = max(VOLUME_MIN, min(VOLUME_MAX, _as_int(config.get('default_volume'), VOLUME_DEFAULT)))
    loop = str(config.get('default_loop') or 'off').strip().lower()
    config['default_loop'] = loop if loop in LOOP_MODES else 'off'
    config['timezone_offset_hours'] = _as_float(config.get('timezone_offset_hours'), 7.0)
    for key, default in (('debug_ffmpeg', False), ('force_ipv4', True), ('auto_update', True)):
        config[key] = _as_bool(config.get(key), default)
    config['log_level'] = str(config.get('log_level') or 'INFO').upper()
    return config


def load_config(env_path: Optional[str] = None, yaml_path: Optional[str] = None) -> dict:
    """
    Loads configuration from the .env file and environment, with config.yaml on top.

    Returns:
        dict: Dictionary containing bot configuration

    Raises:
        ValueError: no bot token configured
    """
    logger = logging.getLogger(__name__)

    root = os.path.join(os.path.dirname(__file__), '..', '..')
    env_path = env_path or os.path.join(root, '.env')
    if os.path.exists(env_path):
        logger.debug(f"Loading .env file from: {env_path}")
        load_dotenv(env_path)

    config = build_config(os.environ)

    yaml_path = yaml_path or os.path.join(root, 'config', 'config.yaml')
    if os.path.exists(yaml_path):
        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f) or {}
            # Merge yaml config over environment defaults
            config = normalize_config({**config, **yaml_config})
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading {yaml_path}: {e}")

    if not config.get('bot_token'):
        raise ValueError("Bot token is required in configuration")

    config['ffmpeg_path'] = find_ffmpeg(config.get('ffmpeg_path'))
    return config


def log_configuration(config: dict):
    """Log one line per setting; the token is only reported as set or not."""
    logger = logging.getLogger(__name__)
    logger.info("Configuration:")
    for key, env_name in CONFIG_KEYS:
        value = config.get(key)
        if key == 'bot_token':
            value = '(set)' if value else '(not set)'
        source = 'env' if os.getenv(env_name) else 'default'
        logger.info(f"  {key:<22} = {value} [{env_name}, {source}]")
