import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FFMPEG_LOGGER = 'ffmpeg'


class ExcludeLoggerFilter(logging.Filter):
    """Drop records emitted by one logger (and its children)."""

    def __init__(self, name: str):
        super().__init__()
        self.excluded = name

    def filter(self, record: logging.LogRecord) -> bool:
        return not (record.name == self.excluded or record.name.startswith(self.excluded + '.'))


def setup_logging(log_dir: str = 'logs', debug_ffmpeg: bool = False, level=logging.INFO):
    """
    Configure logging for the bot with both file and console output.

    Two rotating files of 10MB, keeping 5 backups each:
    - bot.log: everything except transcoder output
    - bot-debug.log: everything, ffmpeg stderr included
    The console shows ffmpeg output only when debug_ffmpeg is on.
    """
    os.makedirs(log_dir, exist_ok=True)

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger
    logger = logging.getLogger()
    logger.setLevel(min(level, logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    no_ffmpeg = ExcludeLoggerFilter(FFMPEG_LOGGER)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'bot.log'),
        maxBytes=10_000_000,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)
    file_handler.addFilter(no_ffmpeg)

    debug_handler = RotatingFileHandler(
        os.path.join(log_dir, 'bot-debug.log'),
        maxBytes=10_000_000,
        backupCount=5,
        encoding='utf-8'
    )
    debug_handler.setFormatter(formatter)
    debug_handler.setLevel(logging.DEBUG if level <= logging.DEBUG else logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    if not debug_ffmpeg:
        console_handler.addFilter(no_ffmpeg)

    logger.addHandler(file_handler)
    logger.addHandler(debug_handler)
    logger.addHandler(console_handler)

    # discord.py's gateway chatter stays out of the console unless asked for
    logging.getLogger('discord').setLevel(max(level, logging.INFO))
    return logger
