from __future__ import annotations

import logging
from typing import Optional, Tuple

import discord

log = logging.getLogger("license-bot")


class GuildMemberSync:
    """Role + DM operations against the license guild.

    Uses the process-wide discord client; every call is fallible and reports
    ``(ok, reason)`` instead of raising so callers can log and move on.
    """

    def __init__(
        self,
        client: discord.Client,
        guild_id: int,
        *,
        client_role_name: str = "client",
        prospect_role_name: str = "prospect",
    ):
        self.client = client
        self.guild_id = int(guild_id or 0)
        self.client_role_name = client_role_name
        self.prospect_role_name = prospect_role_name

    async def fetch_guild(self) -> discord.Guild:
        guild = self.client.get_guild(self.guild_id)
        if guild is None:
            guild = await self.client.fetch_guild(self.guild_id)
        return guild

    async def fetch_member(self, guild: discord.Guild, user_id: int) -> discord.Member:
        member = guild.get_member(user_id)
        if member is None:
            member = await guild.fetch_member(user_id)
        return member

    @staticmethod
    def find_role(guild: discord.Guild, name: str) -> Optional[discord.Role]:
        if not name:
            return None
        return discord.utils.get(guild.roles, name=name)

    async def grant_client_role(self, user_id: str) -> Tuple[bool, str]:
        """Add the client role and drop the prospect role if the member has it."""
        try:
            uid = int(str(user_id).strip())
        except ValueError:
            return (False, "bad_user_id")
        try:
            guild = await self.fetch_guild()
            member = await self.fetch_member(guild, uid)
        except discord.NotFound:
            return (False, "member_not_found")
        except discord.HTTPException as e:
            log.warning(f"[Roles] Could not fetch member {uid}: {e}")
            return (False, "fetch_failed")

        client_role = self.find_role(guild, self.client_role_name)
        if client_role is None:
            log.warning(f"[Roles] Role '{self.client_role_name}' not found in guild {self.guild_id}")
            return (False, "client_role_missing")

        try:
            if client_role not in member.roles:
                await member.add_roles(client_role, reason="License validated")
            prospect_role = self.find_role(guild, self.prospect_role_name)
            if prospect_role is not None and prospect_role in member.roles:
                await member.remove_roles(prospect_role, reason="License validated; no longer a prospect")
        except discord.Forbidden:
            log.warning(f"[Roles] Missing permissions to edit roles for {uid}")
            return (False, "forbidden")
        except discord.HTTPException as e:
            log.warning(f"[Roles] Role update failed for {uid}: {e}")
            return (False, "http_error")
        log.info(f"[Roles] {uid} now has '{client_role.name}'")
        return (True, "ok")

    async def send_dm(self, user_id: str, content: str) -> Tuple[bool, str]:
        try:
            uid = int(str(user_id).strip())
        except ValueError:
            return (False, "bad_user_id")
        try:
            guild = await self.fetch_guild()
            member = await self.fetch_member(guild, uid)
            await member.send(content)
        except discord.Forbidden:
            log.info(f"[DM] Cannot DM {uid} (DMs closed)")
            return (False, "dm_closed")
        except discord.NotFound:
            return (False, "member_not_found")
        except discord.HTTPException as e:
            log.warning(f"[DM] Failed to DM {uid}: {e}")
            return (False, "http_error")
        return (True, "ok")
