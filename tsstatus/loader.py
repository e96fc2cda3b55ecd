# tsstatus/loader.py
from __future__ import annotations

import logging

from tsstatus.cogs.status_display import StatusDisplayCog
from tsstatus.cogs.errors import ErrorHandlerCog

log = logging.getLogger(__name__)


async def load_all(bot, settings, app, scheduler):
    log.info("Starting loader...")

    # attach shared deps (so any cog can grab them if needed)
    bot.settings = settings
    bot.app_context = app

    # ---------------- STATUS DISPLAY ----------------
    # Without it the bot has nothing to do, so a failure here is fatal.
    await bot.add_cog(StatusDisplayCog(bot, settings, app, scheduler))
    log.info("StatusDisplayCog loaded")

    # ---------------- ERROR HANDLER ----------------
    try:
        await bot.add_cog(ErrorHandlerCog(bot))
        log.info("ErrorHandlerCog loaded")
    except Exception:
        log.exception("ErrorHandlerCog FAILED")

    log.info("Loaded cogs: %s", ", ".join(bot.cogs.keys()))
