from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Reusable bool coercion: "true" / "1" / "yes" → True
# ---------------------------------------------------------------------------

def _coerce_bool(v: object) -> object:
    if isinstance(v, str):
        return v.lower() in ("true", "1", "yes")
    return v


CoercedBool = Annotated[bool, BeforeValidator(_coerce_bool)]


# ---------------------------------------------------------------------------
# Base for every config block; unknown keys are a validation error
# ---------------------------------------------------------------------------

class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Platform clients
# ---------------------------------------------------------------------------

class TelegramConfig(_Section):
    token:                              str
    skip_old_messages:                  CoercedBool = True
    use_first_name_instead_of_username: CoercedBool = False
    max_file_size:                      int         = 20 * 1024 * 1024


class DiscordConfig(_Section):
    token: str


class MessageMapConfig(_Section):
    backend:     Literal["memory", "sqlite"] = "memory"
    max_entries: int                         = Field(default=100_000, ge=0)
    path:        str                         = "messages.db"


class AdvisoryConfig(_Section):
    project_name:         str = "Crosstalk"
    project_url:          str = ""
    telegram_support_url: str = ""
    discord_support_url:  str = ""


# ---------------------------------------------------------------------------
# Bridges
# ---------------------------------------------------------------------------

class BridgeTelegramConfig(_Section):
    chat_id:                  int
    relay_join_messages:      CoercedBool = True
    relay_leave_messages:     CoercedBool = True
    send_emoji_with_stickers: CoercedBool = True


class BridgeDiscordConfig(_Section):
    channel_id: int


class BridgeConfig(_Section):
    name:      str
    direction: Literal["both", "telegram_to_discord", "discord_to_telegram"] = "both"
    telegram:  BridgeTelegramConfig
    discord:   BridgeDiscordConfig


# ---------------------------------------------------------------------------
# Top-level application config
# ---------------------------------------------------------------------------

class AppConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    telegram:    TelegramConfig
    discord:     DiscordConfig
    message_map: MessageMapConfig   = Field(default_factory=MessageMapConfig)
    advisory:    AdvisoryConfig     = Field(default_factory=AdvisoryConfig)
    bridges:     list[BridgeConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_bridge_names(self) -> AppConfig:
        names = [b.name for b in self.bridges]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate bridge name(s): {', '.join(dupes)}")
        return self

    def secrets(self) -> frozenset[str]:
        """Values that must never show up in logs."""
        return frozenset({self.telegram.token, self.discord.token})
