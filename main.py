#!/usr/bin/python
import os
import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv
from src.cardcast.client import CardCastClient, CardCastConfig
from src.core.runtime import parse_result, post_scorecard, watch_scorecard, unwatch_scorecard

load_dotenv()

CMD_PREFIX = '!'

# Logging setup
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

intents = discord.Intents(messages=True, message_content=True, guilds=True)
bot = commands.Bot(command_prefix=CMD_PREFIX, intents=intents)

def required_env(name: str) -> str:
    v = os.environ.get(name)
    if v is None or v == "":
        raise RuntimeError(f"Missing required env var: {name}")
    return v

def _env_bool(name: str, default: bool = False) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    v = v.strip().lower()
    return v in ("1", "true", "t", "yes", "y", "on")


DISCORD_TOKEN = required_env("DISCORD_BOT_TOKEN")
OUTPUT_CHANNEL_ID = os.environ.get("OUTPUT_CHANNEL_ID")
SEND_RESULTS = _env_bool("SEND_RESULTS", default=True)
WATCH_INTERVAL_MINUTES = float(os.environ.get("WATCH_INTERVAL_MINUTES", "5"))

CLIENT = CardCastClient(CardCastConfig.from_env())


def _output_channel(ctx):
    # Watched rounds go to the output channel when one is configured
    if OUTPUT_CHANNEL_ID:
        channel = bot.get_channel(int(OUTPUT_CHANNEL_ID))
        if channel is not None:
            return channel
        logger.warning("OUTPUT_CHANNEL_ID=%s not visible to the bot, using #%s",
                       OUTPUT_CHANNEL_ID, getattr(ctx.channel, "name", ctx.channel))
    return ctx.channel


@bot.event
async def on_ready():
    logger.info("Bot is ready. Guilds: %s", [g.name for g in bot.guilds])

@bot.command()
async def scorecard(ctx, arg=None):
    logger.info("!scorecard invoked by %s in #%s", ctx.author, getattr(ctx.channel, "name", ctx.channel))
    await post_scorecard(ctx.channel, CLIENT, arg, SEND_RESULTS)

@bot.command()
async def watch(ctx, arg=None):
    logger.info("!watch invoked by %s in #%s", ctx.author, getattr(ctx.channel, "name", ctx.channel))
    if not arg:
        await ctx.channel.send("Please provide a valid scorecard URL.")
        return
    await watch_scorecard(_output_channel(ctx), CLIENT, arg, WATCH_INTERVAL_MINUTES, SEND_RESULTS)

@bot.command()
async def unwatch(ctx, arg=None):
    logger.info("!unwatch invoked by %s in #%s", ctx.author, getattr(ctx.channel, "name", ctx.channel))
    if not arg:
        await ctx.channel.send("Please provide a valid scorecard URL.")
        return
    await unwatch_scorecard(ctx.channel, arg)


@bot.event
async def on_message(msg):
    if msg.author == bot.user:
        return
    # Bare scorecard links posted by people are picked up automatically;
    # commands handle their own URL argument
    is_command = (getattr(msg, "content", "") or "").startswith(CMD_PREFIX)
    if not is_command and not getattr(getattr(msg, "author", None), "bot", False):
        count = await parse_result(msg, CLIENT, SEND_RESULTS)
        if count:
            logger.info("on_message: posted %s scorecards from message id=%s", count, getattr(msg, "id", None))
    # Always let command handling proceed
    await bot.process_commands(msg)


bot.run(DISCORD_TOKEN)
