"""
Embed templates for every user-facing reply.

Each reply kind has a colour and a title prefix:
- success: green, checkmark
- error: red, cross
- warning: yellow, warning sign
- info: blue, info sign
"""

import discord
from typing import Iterable, Optional, Tuple
from utils.constants import COLORS

STYLES = {
    'success': ("✅", "Success", COLORS['SUCCESS']),
    'error': ("❌", "Error", COLORS['ERROR']),
    'warning': ("⚠️", "Warning", COLORS['WARNING']),
    'info': ("ℹ️", "Information", COLORS['INFO']),
}


def create_embed(
    kind: str,
    description: str = "",
    title: Optional[str] = None,
    fields: Iterable[Tuple[str, str]] = (),
    footer: Optional[str] = None,
) -> discord.Embed:
    """
    Create a standardized embed for `kind` (success, error, warning or info).

    Args:
        kind: Reply kind, selects colour and title prefix
        description: Main message content
        title: Optional title. If None, uses the kind's default title
        fields: (name, value) pairs rendered inline
        footer: Optional footer text

    Returns:
        discord.Embed: The rendered embed
    """
    icon, default_title, color = STYLES.get(kind, STYLES['info'])
    if title is None:
        title = f"{icon} {default_title}"

    embed = discord.Embed(title=title, description=description, color=color)
    for name, value in fields:
        embed.add_field(name=name, value=value, inline=True)
    if footer:
        embed.set_footer(text=footer)
    return embed


def render_reply(reply) -> discord.Embed:
    """Turn a dispatcher Reply into an embed."""
    return create_embed(
        reply.kind.value,
        description=reply.message,
        title=reply.title,
        fields=reply.fields,
    )


# Convenience functions for common use cases
def success(message: str, footer: Optional[str] = None) -> discord.Embed:
    return create_embed('success', message, footer=footer)


def error(message: str, footer: Optional[str] = None) -> discord.Embed:
    return create_embed('error', message, footer=footer)


def info(message: str, footer: Optional[str] = None) -> discord.Embed:
    return create_embed('info', message, footer=footer)
