from __future__ import annotations

import argparse
import asyncio
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterable, Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from .config import Config, ConfigError, load_config
from .daemon import Daemon
from .models import Giveaway, new_giveaway_id
from .state import CHANNEL_NOT_SET, StateRegistry
from .storage import GiveawayStore


PERMISSION_LOG = logging.getLogger("giveaway.permissions")
ENV_PATH = Path(".env")


def _load_env_file(path: Path = ENV_PATH) -> None:
    if not path.exists():
        return
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if value and ((value[0] == value[-1]) and value.startswith(("'", '"'))):
            value = value[1:-1]
        os.environ.setdefault(key, value)


def configure_logging(level: str) -> None:
    console_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_dir = Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "log.txt", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)


class GiveawayBot(commands.Bot):
    def __init__(self, config: Config, store: GiveawayStore) -> None:
        intents = discord.Intents.default()

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=config.application_id,
        )
        self.config = config
        self.store = store
        self.state_registry = StateRegistry()
        self.daemon = Daemon(self, config.giveaways, store, self.state_registry)

    async def setup_hook(self) -> None:
        self._daemon_loop.change_interval(
            seconds=self.config.giveaways.daemon_interval_seconds
        )
        self._daemon_loop.start()
        await self.tree.sync()
        dev_guild_id = self.config.permissions.development_guild_id
        if dev_guild_id:
            guild = discord.Object(dev_guild_id)
            await self.tree.sync(guild=guild)

    @tasks.loop(seconds=5)
    async def _daemon_loop(self) -> None:
        await self.daemon.tick()

    @_daemon_loop.before_loop
    async def _before_daemon_loop(self) -> None:
        await self.wait_until_ready()

    async def on_ready(self) -> None:
        logging.getLogger(__name__).info(
            "Logged in as %s (%s)", self.user, self.user.id
        )  # type: ignore[attr-defined]


def is_admin(
    member: discord.Member,
    admin_roles: Iterable[int],
    *,
    base_permissions: Optional[discord.Permissions] = None,
) -> bool:
    guild = getattr(member, "guild", None)
    if guild is not None and getattr(guild, "owner_id", None) == member.id:
        return True

    permissions_obj = base_permissions
    if permissions_obj is None:
        permissions_obj = getattr(member, "guild_permissions", None)
    if permissions_obj and (
        permissions_obj.administrator or permissions_obj.manage_guild
    ):
        return True

    configured = {int(role_id) for role_id in admin_roles}
    if not configured:
        return False
    member_roles = {role.id for role in getattr(member, "roles", [])}
    return bool(configured & member_roles)


async def admin_required(
    interaction: discord.Interaction, admin_roles: Iterable[int]
) -> Optional[str]:
    command_name = getattr(getattr(interaction, "command", None), "name", "unknown")
    user = interaction.user
    if interaction.guild is None or not isinstance(user, discord.Member):
        PERMISSION_LOG.debug(
            "Denied command %s for user %s: non-guild context.",
            command_name,
            getattr(user, "id", "unknown"),
        )
        return "This command can only be used inside a guild."

    if not is_admin(
        user, admin_roles, base_permissions=getattr(interaction, "permissions", None)
    ):
        PERMISSION_LOG.warning(
            "Denied command %s for user %s: missing giveaway admin rights.",
            command_name,
            user.id,
        )
        return "You do not have permission to manage giveaways."

    PERMISSION_LOG.debug("Authorized command %s for user %s.", command_name, user.id)
    return None


def build_bot(config_path: Path) -> GiveawayBot:
    _load_env_file()
    config = load_config(config_path)
    configure_logging(config.logging.level)
    store = GiveawayStore(
        config.data_dir / "giveaways.sqlite",
        retention_days=config.giveaways.retention_days,
        winning_cooldown_days=config.giveaways.winning_cooldown_days,
    )
    return GiveawayBot(config, store)


def register_commands(bot: GiveawayBot) -> None:
    store = bot.store
    admin_roles = bot.config.permissions.admin_roles

    @bot.tree.command(
        name="giveaway-channel",
        description="Set the channel giveaways are announced in.",
    )
    @app_commands.describe(
        channel="Channel to use. Defaults to the channel this command is run in."
    )
    async def giveaway_channel(
        interaction: discord.Interaction,
        channel: Optional[discord.TextChannel] = None,
    ) -> None:
        error = await admin_required(interaction, admin_roles)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return
        target = channel or interaction.channel
        if not isinstance(target, discord.TextChannel):
            await interaction.response.send_message(
                "Giveaways can only run in a text channel.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        await store.set_channel_id(target.id)
        bot.state_registry.remove(CHANNEL_NOT_SET)
        await interaction.followup.send(
            f"Giveaway channel set to {target.mention}.", ephemeral=True
        )

    @bot.tree.command(name="giveaway-add", description="Create a new giveaway.")
    @app_commands.describe(
        game_name="Name of the game being given away.",
        game_url="Store page of the game.",
        price="Price range of the game, used for winner cooldowns.",
        duration_minutes="How long entries stay open.",
        start_minutes="Delay before the giveaway is announced.",
        code="Game key sent to the winner. Leave empty to hand it out yourself.",
    )
    async def giveaway_add(
        interaction: discord.Interaction,
        game_name: str,
        game_url: str,
        price: str,
        duration_minutes: app_commands.Range[int, 1],
        start_minutes: Optional[app_commands.Range[int, 0]] = None,
        code: Optional[str] = None,
    ) -> None:
        error = await admin_required(interaction, admin_roles)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        giveaway = Giveaway(
            id=new_giveaway_id(),
            owner_id=interaction.user.id,
            game_name=game_name.strip(),
            game_url=game_url.strip(),
            price=price.strip(),
            created=datetime.now(tz=UTC),
            duration_minutes=duration_minutes,
            start_minutes=start_minutes or None,
            code=(code or "").strip() or None,
        )
        await store.update(giveaway)
        logging.getLogger(__name__).info(
            "Giveaway ID %s - %s created by %s.",
            giveaway.id,
            giveaway.game_name,
            interaction.user.id,
        )
        when = (
            f"in {giveaway.start_minutes} minute(s)"
            if giveaway.start_minutes
            else "shortly"
        )
        await interaction.followup.send(
            f"Giveaway `{giveaway.id}` for **{giveaway.game_name}** will start {when}.",
            ephemeral=True,
        )

    @bot.tree.command(
        name="giveaway-status",
        description="Show active giveaways and any configuration warnings.",
    )
    async def giveaway_status(interaction: discord.Interaction) -> None:
        error = await admin_required(interaction, admin_roles)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        active = await store.get_active()
        lines = []
        for _, text in bot.state_registry.items():
            lines.append(f"⚠️ {text}")
        if active:
            lines.append("Active giveaways:")
            lines.extend(
                f"- `{g.id}` **{g.game_name}** ({g.status.value}, "
                f"{len(g.participants)} participant(s))"
                for g in active
            )
        else:
            lines.append("No active giveaways.")
        await interaction.followup.send("\n".join(lines), ephemeral=True)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Discord Reaction Giveaway Bot")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config") / "config.yaml",
        help="Path to the bot configuration file.",
    )
    args = parser.parse_args()

    try:
        bot = build_bot(args.config)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    register_commands(bot)

    async with bot:
        await bot.start(bot.config.token)


if __name__ == "__main__":
    asyncio.run(main())
