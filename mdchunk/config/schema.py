"""Configuration schema using Pydantic."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from mdchunk.markdown.tables import TableMode

ChunkMode = Literal["length", "newline"]
BreakPreference = Literal["paragraph", "newline", "sentence"]

# Surfaces whose clients render neither pipe tables nor monospace well.
DEFAULT_TABLE_MODES: dict[str, TableMode] = {
    "signal": "bullets",
    "whatsapp": "bullets",
}

DEFAULT_TEXT_LIMIT = 2000


class Base(BaseModel):
    """Accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MarkdownConfig(Base):
    tables: TableMode | None = None
    table_hairspacing: bool | None = None


class AccountConfig(Base):
    markdown: MarkdownConfig = Field(default_factory=MarkdownConfig)


class BlockChunkingConfig(Base):
    """Streaming block sizes for :class:`EmbeddedBlockChunker`."""

    min_chars: int = Field(default=800, ge=1)
    max_chars: int = Field(default=1200, ge=1)
    break_preference: BreakPreference = "paragraph"
    # Emit every complete paragraph as soon as it arrives.
    flush_on_paragraph: bool = False


class ChannelConfig(Base):
    markdown: MarkdownConfig = Field(default_factory=MarkdownConfig)
    accounts: dict[str, AccountConfig] = Field(default_factory=dict)
    text_limit: int | None = Field(default=None, ge=1)
    max_lines_per_message: int | None = Field(default=None, ge=1)
    chunk_mode: ChunkMode = "length"
    block_streaming: BlockChunkingConfig = Field(default_factory=BlockChunkingConfig)


class DeliveryProfile(Base):
    """Resolved per-destination limits and rendering options."""

    max_chars: int = Field(default=DEFAULT_TEXT_LIMIT, ge=1)
    max_lines: int | None = Field(default=None, ge=1)
    table_mode: TableMode = "code"
    table_hairspacing: bool = True
    chunk_mode: ChunkMode = "length"
    debug_dump_dir: str | None = None


class Config(Base):
    channels: dict[str, ChannelConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _normalize_channel_ids(self) -> "Config":
        self.channels = {normalize_channel_id(k): v for k, v in self.channels.items() if normalize_channel_id(k)}
        return self


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def normalize_channel_id(channel: str | None) -> str:
    return (channel or "").strip().lower()


def normalize_account_id(account_id: str | None) -> str:
    return (account_id or "").strip() or "default"


def _account_entries(section: ChannelConfig, account_id: str | None) -> list[AccountConfig]:
    """Account entries to consult in order: exact key, then case-insensitive match."""
    normalized = normalize_account_id(account_id)
    entries: list[AccountConfig] = []
    direct = section.accounts.get(normalized)
    if direct is not None:
        entries.append(direct)
    lowered = normalized.lower()
    for key, entry in section.accounts.items():
        if key.lower() == lowered and entry is not direct:
            entries.append(entry)
            break
    return entries


def _channel_section(cfg: Config | None, channel: str | None) -> ChannelConfig | None:
    if cfg is None:
        return None
    channel_id = normalize_channel_id(channel)
    if not channel_id:
        return None
    return cfg.channels.get(channel_id)


def resolve_markdown_table_mode(
    cfg: Config | None,
    channel: str | None,
    account_id: str | None = None,
) -> TableMode:
    """Table mode cascade: account → channel → per-surface default."""
    channel_id = normalize_channel_id(channel)
    default = DEFAULT_TABLE_MODES.get(channel_id, "code")
    section = _channel_section(cfg, channel_id)
    if section is None:
        return default
    for entry in _account_entries(section, account_id):
        if entry.markdown.tables is not None:
            return entry.markdown.tables
    if section.markdown.tables is not None:
        return section.markdown.tables
    return default


def resolve_table_hairspacing(
    cfg: Config | None,
    channel: str | None,
    account_id: str | None = None,
) -> bool:
    """Hairspace compensation cascade: account → channel → on."""
    section = _channel_section(cfg, channel)
    if section is None:
        return True
    for entry in _account_entries(section, account_id):
        if entry.markdown.table_hairspacing is not None:
            return entry.markdown.table_hairspacing
    if section.markdown.table_hairspacing is not None:
        return section.markdown.table_hairspacing
    return True


def resolve_delivery_profile(
    cfg: Config | None,
    channel: str | None,
    account_id: str | None = None,
    default_limit: int = DEFAULT_TEXT_LIMIT,
) -> DeliveryProfile:
    """Build the :class:`DeliveryProfile` for one channel/account."""
    section = _channel_section(cfg, channel)
    max_chars = default_limit
    max_lines = None
    chunk_mode: ChunkMode = "length"
    if section is not None:
        if section.text_limit is not None:
            max_chars = section.text_limit
        max_lines = section.max_lines_per_message
        chunk_mode = section.chunk_mode
    return DeliveryProfile(
        max_chars=max_chars,
        max_lines=max_lines,
        table_mode=resolve_markdown_table_mode(cfg, channel, account_id),
        table_hairspacing=resolve_table_hairspacing(cfg, channel, account_id),
        chunk_mode=chunk_mode,
    )
