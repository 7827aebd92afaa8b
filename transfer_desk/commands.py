from typing import Optional

import discord
from discord import app_commands

from .aggregator import build_board_content, format_duration
from .backend import BackendError, Err
from .models import CustomerDetails, ServiceType
from .recorder import duration_seconds, step_name
from .timeutil import utc_now

SERVICE_TYPE_CHOICES = [
    app_commands.Choice(name="One day", value=ServiceType.ONE_DAY.value),
    app_commands.Choice(name="Normal", value=ServiceType.NORMAL.value),
]

NO_SESSION_MESSAGE = "No active customer session. Use `/customer-register` first."


def render_step_status(recorder) -> str:
    now = utc_now()
    lines = [f"Current step: {recorder.current_step} ({step_name(recorder.current_step)})"]
    for timing in recorder.timings:
        if timing.end_time is not None:
            elapsed = duration_seconds(timing.start_time, timing.end_time)
            lines.append(f"- {step_name(timing.step_id)}: completed in `{format_duration(elapsed)}`")
        else:
            elapsed = duration_seconds(timing.start_time, now)
            lines.append(f"- {step_name(timing.step_id)}: in progress for `{format_duration(elapsed)}`")
    return "\n".join(lines)


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    async def wrong_guild(interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return True
        return False

    @bot.tree.command(name="status", description="Show bot and session status", guild=guild_scope)
    async def status(interaction: discord.Interaction):
        now_local = utc_now().astimezone(bot.config.timezone)
        scope = bot.desk.scope

        lines = [
            "Service desk status: online",
            f"Guild ID: `{bot.config.guild_id}`",
            f"Timezone: `{bot.config.timezone.key}`",
            f"Current local time: `{now_local.isoformat()}`",
            f"Language: `{bot.session_store.language}` | Theme: `{bot.session_store.theme}`",
        ]
        if scope.active:
            session = scope.current
            lines.append(f"Active customer: `{session.details.full_name}` on step {session.recorder.current_step}")
        else:
            lines.append("Active customer: none")
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="customer-register", description="Register a customer and start the workflow", guild=guild_scope)
    @app_commands.describe(
        name="Customer full name",
        phone="Contact number",
        vehicle_number="Vehicle registration number",
        service_type="Service speed",
        transfer_type="Type of transfer",
        service_id="Service reference, if one exists",
    )
    @app_commands.choices(service_type=SERVICE_TYPE_CHOICES)
    async def customer_register(
        interaction: discord.Interaction,
        name: str,
        phone: str,
        vehicle_number: str,
        service_type: Optional[str] = None,
        transfer_type: str = "",
        service_id: Optional[str] = None,
    ):
        if await wrong_guild(interaction):
            return

        details = CustomerDetails(
            vehicle_number=vehicle_number,
            full_name=name,
            contact_number=phone,
            service_type=ServiceType(service_type or ""),
            transfer_type=transfer_type,
        )

        try:
            session = await bot.desk.register_customer(details, service_id=service_id)
        except BackendError as exc:
            bot.logger.exception("/customer-register failed")
            await interaction.response.send_message(f"Failed to register customer: `{exc}`", ephemeral=True)
            return

        await interaction.response.send_message(
            f"Registered `{details.full_name}` (`{session.context.customer_id}`). "
            f"Step 1 ({step_name(1)}) started.",
            ephemeral=True,
        )

    @bot.tree.command(name="customer-update", description="Update the active customer's details", guild=guild_scope)
    @app_commands.choices(service_type=SERVICE_TYPE_CHOICES)
    async def customer_update(
        interaction: discord.Interaction,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        vehicle_number: Optional[str] = None,
        service_type: Optional[str] = None,
        transfer_type: Optional[str] = None,
    ):
        if await wrong_guild(interaction):
            return
        if not bot.desk.scope.active:
            await interaction.response.send_message(NO_SESSION_MESSAGE, ephemeral=True)
            return

        changes = {
            "full_name": name,
            "contact_number": phone,
            "vehicle_number": vehicle_number,
            "service_type": service_type,
            "transfer_type": transfer_type,
        }
        details = bot.desk.scope.current.update_details(
            **{key: value for key, value in changes.items() if value is not None}
        )
        await interaction.response.send_message(
            f"Updated details for `{details.full_name}`: vehicle `{details.vehicle_number}`, "
            f"service `{details.service_type.value or 'unset'}`, transfer `{details.transfer_type or 'unset'}`.",
            ephemeral=True,
        )

    @bot.tree.command(name="step-complete", description="Complete the current workflow step", guild=guild_scope)
    async def step_complete(interaction: discord.Interaction):
        if await wrong_guild(interaction):
            return
        if not bot.desk.scope.active:
            await interaction.response.send_message(NO_SESSION_MESSAGE, ephemeral=True)
            return

        # /session-end may clear the scope while the write is in flight.
        recorder = bot.desk.scope.current.recorder
        step_id, result = await bot.desk.complete_current_step()
        next_step = recorder.current_step

        lines = [f"Completed step {step_id} ({step_name(step_id)}). Now on step {next_step} ({step_name(next_step)})."]
        if isinstance(result, Err):
            lines.append(f"Timing was not saved: `{result.reason}`")
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="step-status", description="Show step timings for the active customer", guild=guild_scope)
    async def step_status(interaction: discord.Interaction):
        if await wrong_guild(interaction):
            return
        if not bot.desk.scope.active:
            await interaction.response.send_message(NO_SESSION_MESSAGE, ephemeral=True)
            return

        recorder = bot.desk.scope.current.recorder
        await interaction.response.send_message(render_step_status(recorder), ephemeral=True)

    @bot.tree.command(name="session-end", description="End the active customer session", guild=guild_scope)
    async def session_end(interaction: discord.Interaction):
        if await wrong_guild(interaction):
            return

        session = bot.desk.end_session()
        if session is None:
            await interaction.response.send_message("No active customer session.", ephemeral=True)
            return
        await interaction.response.send_message(f"Session for `{session.details.full_name}` ended.", ephemeral=True)

    @bot.tree.command(name="timings", description="Show time spent by customers on service steps", guild=guild_scope)
    @app_commands.describe(search="Filter by customer name or phone")
    async def timings(interaction: discord.Interaction, search: str = ""):
        if await wrong_guild(interaction):
            return

        # Aggregation walks every customer; defer so the interaction does not time out.
        await interaction.response.defer(ephemeral=True, thinking=True)

        try:
            await bot.board.refresh()
        except BackendError:
            bot.logger.exception("/timings refresh failed")
            await interaction.followup.send("Failed to load timings data", ephemeral=True)
            return

        bot.board.search(search)
        content = build_board_content(bot.board, bot.config.timezone, bot.config.timings_page_size)
        try:
            await interaction.followup.send(content, ephemeral=True, allowed_mentions=discord.AllowedMentions.none())
        except discord.HTTPException:
            bot.logger.exception("/timings reply failed")
            await interaction.followup.send("Failed to display timings data", ephemeral=True)

    @bot.tree.command(name="step-set", description="Move the active customer to another step", guild=guild_scope)
    @app_commands.describe(step="Step number to move to (1 = Documents)")
    async def step_set(interaction: discord.Interaction, step: app_commands.Range[int, 1, None]):
        if await wrong_guild(interaction):
            return
        if not bot.desk.scope.active:
            await interaction.response.send_message(NO_SESSION_MESSAGE, ephemeral=True)
            return

        bot.desk.set_step(step)
        await interaction.response.send_message(f"Now on step {step} ({step_name(step)}).", ephemeral=True)

    @bot.tree.command(name="preferences", description="Show or change desk preferences", guild=guild_scope)
    @app_commands.describe(language="Language code, for example en", toggle_theme="Switch between light and dark")
    async def preferences(interaction: discord.Interaction, language: Optional[str] = None, toggle_theme: bool = False):
        if await wrong_guild(interaction):
            return

        store = bot.session_store
        if language:
            store.language = language.strip().lower()
        if toggle_theme:
            store.toggle_theme()

        await interaction.response.send_message(
            f"Language: `{store.language}` | Theme: `{store.theme}`",
            ephemeral=True,
        )
