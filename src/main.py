"""
Point d'entrée du bot musical.

Charge la configuration, met en place les journaux puis lance le bot.
"""

import logging
import sys

from bot.client import MusicBot
from utils.config import load_config, log_configuration
from utils.logging_config import setup_logging


def run():
    """Main entry point for the bot."""
    try:
        config = load_config()
    except ValueError as e:
        logging.basicConfig(level=logging.INFO)
        logging.getLogger(__name__).critical(f"Configuration error: {e}")
        sys.exit(1)

    setup_logging(config['log_dir'], config['debug_ffmpeg'], config['log_level'])
    log_configuration(config)

    bot = MusicBot(config)
    bot.run()


if __name__ == '__main__':
    run()
