import logging
import os

import pytest

from utils.config import build_config, load_config, log_configuration
from utils.logging_config import setup_logging


def test_defaults():
    config = build_config({})

    assert config['port'] == 3000
    assert config['bot_token'] == ''
    assert config['cookie_file'] is None
    assert config['default_volume'] == 100
    assert config['default_loop'] == 'off'
    assert config['timezone_offset_hours'] == 7.0
    assert config['force_ipv4'] is True
    assert config['auto_update'] is True
    assert config['debug_ffmpeg'] is False
    assert config['log_dir'].endswith('logs')
    assert config['data_dir'].endswith('data')


def test_values_are_normalised():
    config = build_config({
        'TOKEN': 'abc',
        'PORT': '8080',
        'DEFAULT_VOLUME': '5000',
        'DEFAULT_LOOP_MODE': 'Queue',
        'TIMEZONE_OFFSET_HOURS': '-3.5',
        'YTDLP_FORCE_IPV4': 'false',
        'YTDLP_AUTO_UPDATE': 'no',
        'DEBUG_FFMPEG': 'TRUE',
        'YTDLP_COOKIES_PATH': '/srv/cookies.txt',
    })

    assert config['bot_token'] == 'abc'
    assert config['port'] == 8080
    assert config['default_volume'] == 1000
    assert config['default_loop'] == 'queue'
    assert config['timezone_offset_hours'] == -3.5
    assert config['force_ipv4'] is False
    assert config['auto_update'] is False
    assert config['debug_ffmpeg'] is True
    assert config['cookie_file'] == '/srv/cookies.txt'


def test_invalid_values_fall_back():
    config = build_config({'DEFAULT_LOOP_MODE': 'forever', 'DEFAULT_VOLUME': 'loud', 'PORT': 'x'})
    assert config['default_loop'] == 'off'
    assert config['default_volume'] == 100
    assert config['port'] == 3000


def test_discord_token_wins_over_token():
    assert build_config({'DISCORD_TOKEN': 'a', 'TOKEN': 'b'})['bot_token'] == 'a'


def test_load_config_merges_yaml(tmp_path, monkeypatch):
    monkeypatch.setenv('DISCORD_TOKEN', 'from-env')
    monkeypatch.setenv('DEFAULT_VOLUME', '80')
    yaml_file = tmp_path / 'config.yaml'
    yaml_file.write_text("default_volume: 2000\ndefault_loop: track\nffmpeg_path: /nonexistent/ffmpeg\n")

    config = load_config(env_path=str(tmp_path / 'missing.env'), yaml_path=str(yaml_file))

    assert config['bot_token'] == 'from-env'
    assert config['default_volume'] == 1000
    assert config['default_loop'] == 'track'
    assert config['ffmpeg_path'] != '/nonexistent/ffmpeg'


def test_load_config_requires_token(tmp_path, monkeypatch):
    monkeypatch.delenv('DISCORD_TOKEN', raising=False)
    monkeypatch.delenv('TOKEN', raising=False)
    with pytest.raises(ValueError):
        load_config(env_path=str(tmp_path / 'missing.env'), yaml_path=str(tmp_path / 'missing.yaml'))


def test_log_configuration_masks_token(caplog):
    with caplog.at_level(logging.INFO, logger='utils.config'):
        log_configuration(build_config({'DISCORD_TOKEN': 'super-secret'}))

    text = "\n".join(r.getMessage() for r in caplog.records)
    assert 'super-secret' not in text
    assert '(set)' in text


def test_setup_logging_splits_ffmpeg_output(tmp_path):
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        setup_logging(str(tmp_path), debug_ffmpeg=False, level='INFO')
        logging.getLogger('ffmpeg').info("[ffmpeg] frame=1")
        logging.getLogger('core.engine').info("NOW PLAYING: a")
        for handler in root.handlers:
            handler.flush()

        main_log = (tmp_path / 'bot.log').read_text(encoding='utf-8')
        debug_log = (tmp_path / 'bot-debug.log').read_text(encoding='utf-8')
        assert 'NOW PLAYING: a' in main_log
        assert 'frame=1' not in main_log
        assert 'frame=1' in debug_log
        assert os.path.exists(tmp_path / 'bot-debug.log')
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved[0]:
            root.addHandler(handler)
        root.setLevel(saved[1])
