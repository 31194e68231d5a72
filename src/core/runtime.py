#!/usr/bin/python

import logging
import re
from typing import List, Optional

import discord

# Local imports
from .dates import display_round_date
from .models import ScorecardResult
from .scheduler import schedule_every, cancel_job
from src.cardcast.client import CardCastClient
from src.cardcast.errors import CardCastError, SnapshotError, UnfinishedRoundError
from src.cardcast.snapshot import scorecard_url

logger = logging.getLogger(__name__)

SCORECARD_URL_PATTERN = re.compile(r"https://(?:www\.)?udisc\.com/scorecards/[A-Za-z0-9]+")

# Discord embed limits
MAX_FIELDS = 25
MAX_FIELD_NAME = 256
MAX_FIELD_VALUE = 1024


def find_scorecard_urls(text: str) -> List[str]:
    """Return scorecard URLs in the order they appear, without duplicates."""
    seen: List[str] = []
    for m in SCORECARD_URL_PATTERN.finditer(text or ""):
        if m.group(0) not in seen:
            seen.append(m.group(0))
    return seen


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def build_scorecard_embed(result: ScorecardResult) -> discord.Embed:
    description = f"{result.layout_name} • {display_round_date(result.date)}"
    details = []
    if result.number_of_holes:
        details.append(f"{result.number_of_holes} holes")
    if result.layout_par is not None:
        details.append(f"par {result.layout_par}")
    if result.layout_distance is not None:
        details.append(f"{result.layout_distance} ft")
    if details:
        description += "\n" + ", ".join(details)

    embed = discord.Embed(title=result.course_name or "Scorecard", description=description, url=result.url)

    # Lowest total first reads like a leaderboard; ties keep arrival order
    ranked = sorted(result.entries, key=lambda e: e.total)
    for entry in ranked[:MAX_FIELDS]:
        names = ", ".join(p.name or p.username for p in entry.players) or "No players"
        value = f"Total: {entry.total}"
        if result.layout_par is not None:
            diff = entry.total - result.layout_par
            value += f" ({'+' if diff > 0 else ''}{diff if diff else 'E'})"
        if entry.holes:
            value += "\n" + " | ".join(str(h) for h in entry.holes)
        embed.add_field(name=_clip(names, MAX_FIELD_NAME), value=_clip(value, MAX_FIELD_VALUE), inline=False)

    if len(ranked) > MAX_FIELDS:
        embed.set_footer(text=f"{len(ranked) - MAX_FIELDS} more entries not shown")
    return embed


def print_embed(embed: discord.Embed) -> None:
    # Pretty-print the embed to stdout instead of sending to Discord
    print("==== Scorecard (DEBUG) ====")
    title = getattr(embed, "title", None) or ""
    desc = getattr(embed, "description", None) or ""
    print(f"Title: {title}")
    if desc:
        print(f"Description: {desc}")
    fields = getattr(embed, "fields", []) or []
    for f in fields:
        name = getattr(f, "name", "")
        value = getattr(f, "value", "")
        print(f"\n{name}\n{'-' * len(name)}\n{value}")
    footer = getattr(getattr(embed, "footer", None), "text", None)
    if footer:
        print(f"\nFooter: {footer}")
    print("==== End Scorecard (DEBUG) ====")


async def send_embed(text_channel, embed: discord.Embed, send_results: bool = True):
    if not send_results:
        print_embed(embed)
        return
    await text_channel.send(embed=embed)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

async def post_scorecard(text_channel, client: CardCastClient, id_or_url: Optional[str],
                         send_results: bool = True) -> bool:
    """
    Fetch one scorecard and post it to the channel.
    Returns True if a scorecard was posted.
    """
    if not id_or_url:
        await text_channel.send("Please provide a valid scorecard URL.")
        return False

    try:
        result = await client.fetch_scorecard(id_or_url)
    except UnfinishedRoundError:
        await text_channel.send("That round isn't finished yet. Use `!watch` to post it once it is.")
        return False
    except SnapshotError as e:
        logger.warning("post_scorecard: snapshot failed for %s: %s", id_or_url, e)
        await text_channel.send("Please provide a valid scorecard URL.")
        return False
    except CardCastError:
        logger.exception("post_scorecard: fetching %s failed", id_or_url)
        await text_channel.send("An error occurred while fetching the scorecard.")
        return False

    await send_embed(text_channel, build_scorecard_embed(result), send_results)
    logger.info("post_scorecard: posted %s (%s entries) to '%s'",
                result.url, len(result.entries), getattr(text_channel, "name", str(text_channel)))
    return True


async def parse_result(msg, client: CardCastClient, send_results: bool = True) -> int:
    """
    Post every scorecard linked in a Discord message.
    Returns the number of scorecards posted.
    """
    urls = find_scorecard_urls(getattr(msg, "content", "") or "")
    if not urls:
        return 0

    logger.debug("parse_result: found %s scorecard links in message id=%s", len(urls), getattr(msg, "id", None))
    posted = 0
    for url in urls:
        try:
            if await post_scorecard(msg.channel, client, url, send_results):
                posted += 1
        except Exception:
            logger.exception("parse_result: failed to post %s from msg id=%s", url, getattr(msg, "id", None))
    return posted


def watch_job_id(id_or_url: str) -> str:
    return f"watch:{scorecard_url(id_or_url)}"


async def watch_scorecard(text_channel, client: CardCastClient, id_or_url: str,
                          minutes: float = 5, send_results: bool = True) -> bool:
    """
    Post the scorecard now if the round is finished, otherwise re-check every
    `minutes` minutes and post it once it is. Returns True if a watch was scheduled.
    """
    try:
        job_id = watch_job_id(id_or_url)
    except SnapshotError:
        await text_channel.send("Please provide a valid scorecard URL.")
        return False

    async def _check() -> bool:
        try:
            result = await client.fetch_scorecard(id_or_url)
        except UnfinishedRoundError:
            logger.debug("watch: %s still in progress", id_or_url)
            return False
        except CardCastError as e:
            logger.warning("watch: check of %s failed, will retry: %s", id_or_url, e)
            return False
        await send_embed(text_channel, build_scorecard_embed(result), send_results)
        cancel_job(job_id)
        return True

    if await _check():
        return False

    schedule_every(_check, job_id=job_id, minutes=minutes)
    await text_channel.send(f"Watching that round, checking every {minutes:g} minute(s).")
    return True


async def unwatch_scorecard(text_channel, id_or_url: str) -> bool:
    try:
        removed = cancel_job(watch_job_id(id_or_url))
    except SnapshotError:
        removed = False
    await text_channel.send("Stopped watching that round." if removed else "That round isn't being watched.")
    return removed
