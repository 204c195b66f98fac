import discord
from discord.ext import commands
import logging
import asyncio
import math
import os
from typing import List, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager
from .errors import SessionNotFoundError
from .models import FeedbackView, QuestionView, SessionResult
from .quiz_controller import QuizController
from .quiz_engine import QuizEventListener

logger = logging.getLogger(__name__)

MAX_BUTTON_LABEL = 80
COLOR_QUESTION = 0x00ff00
COLOR_WARNING = 0xff6600
COLOR_CORRECT = 0x2ecc71
COLOR_INCORRECT = 0xff0000
COLOR_INFO = 0x6699ff


def format_seconds(remaining: float) -> str:
    seconds = int(math.ceil(remaining))
    return f"{seconds} second{'s' if seconds != 1 else ''}"


def build_question_embed(view: QuestionView, time_remaining: Optional[float] = None) -> discord.Embed:
    """Render a question view-model as an embed."""
    remaining = view.time_remaining if time_remaining is None else time_remaining
    embed = discord.Embed(
        title=f"🎯 {view.difficulty.title()} - Question {view.question_number}/{view.round_size}",
        description=view.question_text,
        color=COLOR_QUESTION if remaining > 3 else COLOR_WARNING
    )
    embed.add_field(name="⏱️ Time Remaining", value=format_seconds(remaining), inline=True)
    embed.add_field(
        name="💡 Hint",
        value="Available" if view.hint_available else "None left",
        inline=True
    )
    embed.set_footer(text="Pick an answer before the timer runs out")
    return embed


def build_feedback_embed(view: FeedbackView, question_text: str) -> discord.Embed:
    """Render answer feedback as an embed."""
    if view.via_timeout:
        title = "⏰ Time's Up!"
    elif view.chosen_is_correct:
        title = "✅ Correct!"
    else:
        title = "❌ Incorrect"

    embed = discord.Embed(
        title=title,
        description=question_text,
        color=COLOR_CORRECT if view.chosen_is_correct else COLOR_INCORRECT
    )
    embed.add_field(name="Correct Answer", value=f"**{view.correct_option_label}**", inline=False)
    if view.explanation_text:
        embed.add_field(name="📖 Explanation", value=view.explanation_text, inline=False)
    if view.integrity_error:
        embed.set_footer(text="This question's answer key is broken; it was counted as incorrect.")
    return embed


def build_result_embed(result: SessionResult) -> discord.Embed:
    """Render the final session result as an embed."""
    if result.is_empty:
        return discord.Embed(
            title="❌ No Quiz Available",
            description="Every difficulty tier is empty. Check the question file.",
            color=COLOR_INCORRECT
        )

    embed = discord.Embed(
        title="🎉 Quiz Complete!",
        description=result.score_text,
        color=COLOR_INFO
    )
    embed.add_field(name="Accuracy", value=f"{result.percentage:.0f}%", inline=True)
    return embed


class OptionButton(discord.ui.Button):
    """Answer button carrying the full option label."""

    def __init__(self, renderer: "DiscordQuizRenderer", option_label: str, index: int):
        super().__init__(
            label=option_label[:MAX_BUTTON_LABEL],
            style=discord.ButtonStyle.secondary,
            custom_id=f"quiz:{renderer.channel_id}:option:{index}",
            row=min(index // 5, 3)
        )
        self.renderer = renderer
        self.option_label = option_label

    async def callback(self, interaction: discord.Interaction):
        await self.renderer.handle_answer(interaction, self.option_label)


class HintButton(discord.ui.Button):
    def __init__(self, renderer: "DiscordQuizRenderer"):
        super().__init__(
            label="Use Hint",
            emoji="💡",
            style=discord.ButtonStyle.primary,
            custom_id=f"quiz:{renderer.channel_id}:hint",
            row=4
        )
        self.renderer = renderer

    async def callback(self, interaction: discord.Interaction):
        await self.renderer.handle_hint(interaction)


class QuestionButtons(discord.ui.View):
    """Buttons for one question: one per option plus the hint button."""

    def __init__(self, renderer: "DiscordQuizRenderer", view: QuestionView, timeout: float):
        super().__init__(timeout=timeout)
        self.option_buttons: List[OptionButton] = []
        for index, label in enumerate(view.ordered_option_labels):
            button = OptionButton(renderer, label, index)
            self.option_buttons.append(button)
            self.add_item(button)

        self.hint_button: Optional[HintButton] = None
        if view.hint_available:
            self.hint_button = HintButton(renderer)
            self.add_item(self.hint_button)

    def hide_options(self, labels: List[str]) -> None:
        """Remove one option button per hidden label; repeated labels hide one copy each."""
        for label in labels:
            for button in self.option_buttons:
                if button.option_label == label:
                    self.remove_item(button)
                    self.option_buttons.remove(button)
                    break

    def remove_hint(self) -> None:
        if self.hint_button is not None:
            self.remove_item(self.hint_button)
            self.hint_button = None

    def show_feedback(self, feedback: FeedbackView) -> None:
        """Colour the chosen and correct buttons and lock the view."""
        self.remove_hint()
        for button in self.option_buttons:
            if button.option_label == feedback.correct_option_label:
                button.style = discord.ButtonStyle.success
            elif button.option_label == feedback.chosen_option_label:
                button.style = discord.ButtonStyle.danger
            button.disabled = True


class DiscordQuizRenderer(QuizEventListener):
    """
    Turns engine events into Discord messages for one channel.

    Engine callbacks are synchronous, so each event is queued and a single
    consumer task performs the Discord calls in order.
    """

    def __init__(self, controller: QuizController, channel: discord.abc.Messageable, channel_id: int):
        self.controller = controller
        self.channel = channel
        self.channel_id = channel_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._message: Optional[discord.Message] = None
        self._buttons: Optional[QuestionButtons] = None
        self._question: Optional[QuestionView] = None
        self._last_shown_seconds: Optional[int] = None

    def start(self) -> None:
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume())

    # Engine events

    def on_question(self, view: QuestionView) -> None:
        self._last_shown_seconds = None
        self._queue.put_nowait(('question', view))

    def on_tick(self, time_remaining: float) -> None:
        seconds = int(math.ceil(time_remaining))
        if seconds == self._last_shown_seconds:
            return
        if seconds % 5 == 0 or seconds <= 3:
            self._last_shown_seconds = seconds
            self._queue.put_nowait(('tick', time_remaining))

    def on_hint(self, hidden_labels: List[str], hints_remaining: int) -> None:
        self._queue.put_nowait(('hint', hidden_labels))

    def on_feedback(self, view: FeedbackView) -> None:
        self._queue.put_nowait(('feedback', view))

    def on_complete(self, result: SessionResult) -> None:
        self._queue.put_nowait(('complete', result))

    # Player input

    async def handle_answer(self, interaction: discord.Interaction, label: str) -> None:
        try:
            accepted = self.controller.submit_answer(self.channel_id, label)
        except SessionNotFoundError:
            await interaction.response.send_message("⚠️ This quiz has already finished.", ephemeral=True)
            return

        if accepted:
            await interaction.response.defer()
        else:
            await interaction.response.send_message("⚠️ This question was already answered.", ephemeral=True)

    async def handle_hint(self, interaction: discord.Interaction) -> None:
        try:
            hidden = self.controller.use_hint(self.channel_id)
        except SessionNotFoundError:
            await interaction.response.send_message("⚠️ This quiz has already finished.", ephemeral=True)
            return

        if hidden:
            await interaction.response.defer()
        else:
            await interaction.response.send_message("⚠️ No hint available right now.", ephemeral=True)

    # Rendering

    async def _consume(self) -> None:
        while True:
            kind, payload = await self._queue.get()
            try:
                if kind == 'question':
                    await self._render_question(payload)
                elif kind == 'tick':
                    await self._render_tick(payload)
                elif kind == 'hint':
                    await self._render_hint(payload)
                elif kind == 'feedback':
                    await self._render_feedback(payload)
                elif kind == 'complete':
                    await self._render_complete(payload)
            except discord.HTTPException as e:
                logger.error(f"Failed to render {kind} for channel {self.channel_id}: {e}")
            if kind == 'complete':
                return

    async def _render_question(self, view: QuestionView) -> None:
        self._question = view
        self._buttons = QuestionButtons(self, view, timeout=view.time_remaining + 30)
        self._message = await self.channel.send(embed=build_question_embed(view), view=self._buttons)

    async def _render_tick(self, time_remaining: float) -> None:
        if self._message is None or self._question is None:
            return
        await self._message.edit(embed=build_question_embed(self._question, time_remaining))

    async def _render_hint(self, hidden_labels: List[str]) -> None:
        if self._message is None or self._buttons is None:
            return
        self._buttons.hide_options(hidden_labels)
        self._buttons.remove_hint()
        await self._message.edit(view=self._buttons)

    async def _render_feedback(self, view: FeedbackView) -> None:
        if self._message is None or self._buttons is None or self._question is None:
            return
        self._buttons.show_feedback(view)
        self._buttons.stop()
        await self._message.edit(
            embed=build_feedback_embed(view, self._question.question_text),
            view=self._buttons
        )

    async def _render_complete(self, result: SessionResult) -> None:
        if self._buttons is not None:
            self._buttons.stop()
        if result.aborted:
            # /stop already replied with the score
            logger.debug(f"Skipping result message for stopped quiz in channel {self.channel_id}")
            return
        await self.channel.send(embed=build_result_embed(result))


class QuizBot(commands.Bot):
    """Discord bot running tiered quizzes"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("Setting up bot components...")

        self.config_manager = ConfigManager()
        if self.app_config:
            for error in self.config_manager.apply_config(self.app_config):
                logger.warning(f"Configuration value ignored: {error}")

        self.data_manager = DataManager(self.config_manager.get_question_file())
        self.data_manager.load_question_file()
        summary = self.data_manager.get_loading_summary()
        logger.info(f"Loaded {summary['total_questions']} questions across tiers {summary['tiers']}")

        self.quiz_controller = QuizController(self.data_manager, self.config_manager)
        self.setup_commands()
        logger.info("Bot setup completed successfully")

    def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="quiz", description="Start a quiz that climbs from easy to hard")
        async def quiz_command(interaction: discord.Interaction):
            await self.handle_quiz(interaction)

        @self.tree.command(name="stop", description="Stop the current quiz session")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show current quiz status and progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.quiz_controller is not None:
            await self.quiz_controller.shutdown()
        await super().close()

    async def send_response(self, interaction: discord.Interaction, message: str, title: str, color: int, ephemeral: bool = True):
        """Send an embed reply, following up if the interaction was already answered"""
        embed = discord.Embed(title=title, description=message, color=color)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=ephemeral)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=ephemeral)
        except discord.HTTPException as e:
            logger.error(f"Failed to send response: {e}")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        settings = self.config_manager.get_quiz_settings()
        message = (
            "**/quiz** - Start a quiz in this channel\n"
            "**/stop** - Stop the running quiz\n"
            "**/status** - Show quiz progress\n\n"
            f"Tiers: {' → '.join(settings.difficulties)}\n"
            f"You have {settings.time_per_question:g} seconds per question "
            f"and {settings.hint_count} hint(s) per quiz. A hint removes two wrong answers."
        )
        await self.send_response(interaction, message, "📚 Quiz Help", COLOR_INFO)

    async def handle_quiz(self, interaction: discord.Interaction):
        """Handle /quiz command"""
        channel_id = interaction.channel_id
        if self.quiz_controller.has_active_session(channel_id):
            await self.send_response(
                interaction,
                "A quiz is already running in this channel. Use /stop to end it first.",
                "❌ Quiz Already Running",
                COLOR_INCORRECT
            )
            return

        # Events queue up until the renderer starts, so the start reply goes out first
        renderer = DiscordQuizRenderer(self.quiz_controller, interaction.channel, channel_id)
        result = await self.quiz_controller.start_quiz(channel_id, renderer)
        if result['success']:
            await self.send_response(
                interaction, "Get ready for the first question!", "🎯 Quiz Started!", COLOR_QUESTION, ephemeral=False
            )
            renderer.start()
        elif 'result' in result:
            await self.send_response(interaction, result['user_message'], "❌ No Quiz Available", COLOR_INCORRECT)
        else:
            await self.send_response(interaction, result['user_message'], "❌ Quiz Start Failed", COLOR_INCORRECT)

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        result = await self.quiz_controller.stop_quiz(interaction.channel_id)
        if result['success']:
            await self.send_response(interaction, result['user_message'], "🛑 Quiz Stopped", COLOR_INFO, ephemeral=False)
        else:
            await self.send_response(interaction, result['user_message'], "❌ Nothing To Stop", COLOR_INCORRECT)

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        progress = self.quiz_controller.get_session_progress(interaction.channel_id)
        if progress is None:
            last = self.quiz_controller.get_last_result(interaction.channel_id)
            message = "No quiz is running in this channel."
            if last is not None:
                message += f"\nLast quiz: {last.score_text}"
            await self.send_response(interaction, message, "ℹ️ Quiz Status", COLOR_INFO)
            return

        message = (
            f"Tier: **{progress['difficulty']}** - question {progress['question_number']}/{progress['round_size']}\n"
            f"Score: {progress['correct_count']}/{progress['total_questions_seen']}\n"
            f"Hints left: {progress['hints_remaining']}"
        )
        await self.send_response(interaction, message, "📊 Quiz Status", COLOR_INFO)


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Discord Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
