from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from ..domain.errors import WowApiError
from ..domain.models import CharacterView, SpecSummary
from ..services.character_service import CharacterDataService
from ..utils.discord_helpers import (
    MAX_FIELDS,
    ROLE_ICONS,
    class_color,
    clip,
    dungeon_coverage,
    run_line,
    season_label,
)
from ..utils.weekly import WeeklyResetClock


def _title(view: CharacterView) -> str:
    icon = ROLE_ICONS.get(view.active_role or "", "")
    return f"{icon} {view.name} ({view.class_name or '?'})".strip()


def _score(value: float | None) -> str:
    return f"{value:.1f}" if value is not None else "-"


class WowCog(commands.Cog):
    def __init__(self, bot: commands.Bot, characters: CharacterDataService, clock: WeeklyResetClock | None = None):
        self.bot = bot
        self._characters = characters
        self._clock = clock or WeeklyResetClock()

    def _footer(self, embed: discord.Embed) -> discord.Embed:
        stamps = self._characters.cache_status()["timestamps"]
        if stamps:
            embed.set_footer(text="Cached data · refreshes every 30 min")
            embed.add_field(name="Next refresh", value=f"<t:{stamps[1]}:R>", inline=False)
        return embed

    @app_commands.command(name="mplus", description="Mythic+ score and best runs for the roster.")
    @app_commands.describe(refresh="Skip the cache and fetch fresh data")
    async def mplus(self, interaction: discord.Interaction, refresh: bool = False):
        await interaction.response.defer(thinking=True)
        views = await self._characters.get_best_mplus(force_refresh=refresh)
        if not views:
            await interaction.followup.send("No Mythic+ data available right now.", ephemeral=True)
            return

        settings = self._characters.settings
        embed = discord.Embed(
            title=f"Mythic+ best runs · {season_label(settings.current_season_name)}",
            color=class_color(views[0].class_name),
        )
        for view in sorted(views, key=lambda v: v.overall_mplus_score or 0, reverse=True)[:MAX_FIELDS - 1]:
            runs = sorted(view.best_runs, key=lambda r: (r.is_timed, r.mythic_level), reverse=True)
            lines = [f"**Score:** {_score(view.overall_mplus_score)}"]
            coverage = dungeon_coverage(view.best_runs, settings.active_dungeons)
            if coverage:
                lines.append(coverage)
            if view.available_specs:
                lines.append("Specs: " + ", ".join(view.available_specs))
            lines.extend(run_line(r) for r in runs[:4])
            embed.add_field(name=_title(view), value=clip("\n".join(lines)), inline=False)
        await interaction.followup.send(embed=self._footer(embed))

    @app_commands.command(name="recent", description="Mythic+ runs done since the weekly reset.")
    async def recent(self, interaction: discord.Interaction, refresh: bool = False):
        await interaction.response.defer(thinking=True)
        views = await self._characters.get_recent_mplus(force_refresh=refresh)
        if not views:
            await interaction.followup.send("No recent runs available right now.", ephemeral=True)
            return

        embed = discord.Embed(
            title="Weekly Mythic+",
            description=f"Next reset <t:{int(self._clock.next_reset().timestamp())}:R>",
        )
        for view in views[:MAX_FIELDS]:
            weekly = sorted(self._clock.filter_weekly(view.recent_runs), key=lambda r: r.mythic_level, reverse=True)
            value = "\n".join(run_line(r) for r in weekly[:8]) if weekly else "No runs this week"
            embed.add_field(name=f"{_title(view)} · {len(weekly)} runs", value=clip(value), inline=False)
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="raid", description="Raid progression for the roster.")
    async def raid(self, interaction: discord.Interaction, refresh: bool = False):
        await interaction.response.defer(thinking=True)
        views = await self._characters.get_raid(force_refresh=refresh)
        if not views:
            await interaction.followup.send("No raid data available right now.", ephemeral=True)
            return

        embed = discord.Embed(title="Raid progression")
        for view in views[:MAX_FIELDS]:
            lines = [f"{r.raid_name}: {r.summary}" for r in view.raids[:6]]
            embed.add_field(name=_title(view), value=clip("\n".join(lines) or "-"), inline=False)
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="gear", description="Equipped item level for the roster.")
    async def gear(self, interaction: discord.Interaction, refresh: bool = False):
        await interaction.response.defer(thinking=True)
        views = await self._characters.get_gear(force_refresh=refresh)
        views = [v for v in views if v.gear is not None]
        if not views:
            await interaction.followup.send("No gear data available right now.", ephemeral=True)
            return

        views.sort(key=lambda v: v.gear.average_item_level if v.gear else 0, reverse=True)
        lines = [
            f"**{v.name}** · {v.gear.average_item_level:.1f} ilvl ({v.class_name or '?'})"
            for v in views
            if v.gear is not None
        ]
        embed = discord.Embed(title="Item level", description=clip("\n".join(lines), 4096))
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="links", description="Raider.IO, Warcraft Logs and Armory links.")
    async def links(self, interaction: discord.Interaction):
        links = self._characters.get_links()
        if not links:
            await interaction.response.send_message("No characters configured.", ephemeral=True)
            return
        lines = [
            f"**{l.descriptor.name}** · [Raider.IO]({l.raiderio_url}) · "
            f"[Logs]({l.warcraftlogs_url}) · [Armory]({l.armory_url})"
            for l in links
        ]
        await interaction.response.send_message(embed=discord.Embed(title="Links", description=clip("\n".join(lines), 4096)))

    @app_commands.command(name="specs", description="Best runs of a character split by specialization.")
    @app_commands.describe(name="Character name", spec="Only this spec")
    async def specs(self, interaction: discord.Interaction, name: str, spec: str | None = None):
        await interaction.response.defer(thinking=True)
        try:
            if spec:
                runs = await self._characters.specific_runs(name, spec)
            else:
                comparison = await self._characters.compare_specs(name)
        except ValueError:
            await interaction.followup.send(f"**{name}** is not a valid character name.", ephemeral=True)
            return
        except WowApiError as e:
            await interaction.followup.send(f"API responded with an error.\n`{e}`", ephemeral=True)
            return

        if spec:
            value = "\n".join(run_line(r) for r in runs) or f"No {spec} runs found."
            embed = discord.Embed(title=f"{name} · {spec}", description=clip(value, 4096))
            await interaction.followup.send(embed=embed)
            return

        if not isinstance(comparison.summary, SpecSummary):
            await interaction.followup.send(f"{name}: {comparison.summary}", ephemeral=True)
            return

        embed = discord.Embed(
            title=f"{name} · specs",
            description=f"{comparison.summary.total_runs} runs on {comparison.summary.total_specs} specs",
        )
        for spec_name, stats in list(comparison.specs.items())[:MAX_FIELDS]:
            embed.add_field(
                name=spec_name,
                value=f"{stats.total} runs · avg +{stats.avg_level:.1f} · best +{stats.highest}\n"
                + clip(", ".join(stats.dungeons), 900),
                inline=False,
            )
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="reset", description="Time until the weekly reset.")
    async def reset(self, interaction: discord.Interaction):
        last = int(self._clock.last_reset().timestamp())
        nxt = int(self._clock.next_reset().timestamp())
        await interaction.response.send_message(f"Last reset <t:{last}:F> · next reset <t:{nxt}:R>")
