from __future__ import annotations

from .bot import MplusBot
from .config import get_settings
from .utils.log import setup_logging


def main() -> None:
    settings = get_settings(require_discord=True)
    setup_logging(settings.log_file, settings.log_level)
    bot = MplusBot(settings)
    # Logging is already configured, keep discord.py from adding its own handler
    bot.run(settings.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
