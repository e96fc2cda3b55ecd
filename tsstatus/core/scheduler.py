# tsstatus/core/scheduler.py
from __future__ import annotations

import logging

import discord

from tsstatus.core.change import render_warranted
from tsstatus.core.errors import DisplayMissing, PersistenceFailure, RateLimited, SourceUnavailable
from tsstatus.core.guards import EditRateGuard, RenameRateGuard
from tsstatus.core.snapshot import count_occupants
from tsstatus.core.state import AppContext, DisplayRef
from tsstatus.core.timecore import monotonic, now_utc, seconds_since
from tsstatus.ui.formatting import loading_embed, status_embed

log = logging.getLogger(__name__)


class UpdateScheduler:
    """
    Decides when the status message and the count label get touched.

    Two entry points are driven by periodic loops:
    - tick(): status message (dirty flag / regular / forced refresh)
    - count_tick(): count label rename
    Both re-check their guards on every call; nothing is pre-scheduled,
    so a missed tick only delays the next action.
    """

    def __init__(self, app: AppContext, settings, reader, display, store, *,
                 clock=monotonic, wall=now_utc):
        self.app = app
        self.settings = settings
        self.reader = reader
        self.display = display
        self.store = store
        self.clock = clock
        self.wall = wall

        self.edit_guard = EditRateGuard(settings.min_edit_spacing_seconds)
        self.rename_guard = RenameRateGuard()

        # None once the configured channel turned out not to exist
        self.count_channel_id = settings.count_channel_id

    # ---------------- producers ----------------

    def mark_dirty(self) -> None:
        self.app.dirty.set()

    # ---------------- persistence ----------------

    async def _persist(self, ref: DisplayRef) -> None:
        if self.app.closing:
            return
        try:
            await self.store.save(ref)
        except PersistenceFailure as e:
            # in-memory ref stays current; next render rewrites the row
            log.error("%s", e)

    async def _clear_display(self, reason: str) -> None:
        log.warning("Status display cleared (%s); recreate it with the create command", reason)
        self.app.display = DisplayRef.empty()
        self.app.dirty.consume()
        await self._persist(self.app.display)

    # ---------------- status message ----------------

    def _triggers(self) -> tuple[bool, bool]:
        """(should attempt, forced)"""
        since = seconds_since(self.app.display.last_update_at, self.wall())
        need_regular = since >= self.settings.update_interval_seconds
        need_force = since >= self.settings.force_refresh_seconds
        return (self.app.dirty.is_set or need_regular or need_force), need_force

    async def tick(self) -> None:
        app = self.app
        if app.closing or not app.display.is_active:
            return

        should_attempt, forced = self._triggers()
        if not should_attempt:
            return

        try:
            self.edit_guard.check(self.clock())
        except RateLimited as e:
            # flag stays set; coalesced into the next eligible tick
            log.debug("display edit deferred: %s", e)
            return

        if app.session is None:
            log.debug("display tick skipped: no voice session")
            return

        if app.render_lock.locked():
            return

        async with app.render_lock:
            await self._render(force=forced)

    async def _render(self, *, force: bool) -> bool:
        """Read, diff, edit. Returns True if the message was edited."""
        app = self.app
        was_dirty = app.dirty.consume()

        try:
            snapshot = await self.reader.snapshot(app.session)
        except SourceUnavailable as e:
            log.warning("Skipping display update: %s", e)
            if was_dirty:
                app.dirty.set()
            return False

        warranted, fp = render_warranted(snapshot, app.display.last_fingerprint, force)
        if not warranted:
            return False

        # the ref may have been replaced / cleared while we were reading
        ref = app.display
        if not ref.is_active or app.closing:
            return False

        now = self.wall()
        embed = status_embed(snapshot, self.settings, now=now)

        self.edit_guard.record(self.clock())
        try:
            await self.display.edit(ref, embed)
        except DisplayMissing as e:
            if app.display.message_id == ref.message_id:
                await self._clear_display(str(e))
            return False
        except (discord.HTTPException, TimeoutError) as e:
            log.warning("Could not update status embed: %s", e)
            app.dirty.set()
            return False

        if app.display.message_id != ref.message_id:
            return False

        app.display = ref.rendered(fp, now)
        await self._persist(app.display)
        return True

    # ---------------- lifecycle of the display ----------------

    async def create_display(self, channel) -> DisplayRef:
        """
        Post a fresh status message in `channel` and make it the display.

        Any previous display is forgotten (not deleted). Send failures
        propagate to the caller so the command can report them.
        """
        async with self.app.render_lock:
            ref = await self.display.send(channel, loading_embed(self.settings, now=self.wall()))
            self.app.display = ref
            log.info("Status display created message=%s channel=%s", ref.message_id, ref.channel_id)
            await self._persist(ref)

            self.app.dirty.set()
            if self.app.session is not None:
                await self._render(force=True)
            return self.app.display

    async def forget_display(self, message_id: int) -> bool:
        if self.app.display.message_id != message_id:
            return False
        await self._clear_display("status message was deleted")
        return True

    # ---------------- count label ----------------

    async def ensure_count_channel(self) -> None:
        """Resolve the configured count channel, retrying on later calls until Discord answers."""
        if self.app.count_channel is not None or self.count_channel_id is None:
            return
        try:
            self.app.count_channel = await self.display.resolve_channel(self.count_channel_id)
        except DisplayMissing as e:
            log.error("%s; count label disabled", e)
            self.count_channel_id = None

    async def count_tick(self) -> None:
        app = self.app
        if app.closing:
            return
        await self.ensure_count_channel()

        channel = app.count_channel
        if channel is None or app.session is None:
            return

        try:
            channels, clients = await self.reader.read(app.session)
        except SourceUnavailable as e:
            log.warning("Skipping count update: %s", e)
            return

        count = count_occupants(channels, clients, ignore_default=self.settings.count_ignore_default)
        state = app.count_label
        if state.last_count == count:
            return

        now = self.clock()
        try:
            self.rename_guard.check(state, now)
        except RateLimited as e:
            log.debug("count rename to %d deferred: %s", count, e)
            return

        name = self.settings.count_name_template.replace("%COUNT%", str(count))
        try:
            await self.display.rename(channel, name)
        except (discord.HTTPException, TimeoutError) as e:
            log.error("Failed to update count channel name: %s", e)
            return

        state.last_count = count
        self.rename_guard.record(state, now)
        log.info("Count channel renamed to %r", name)
