"""Reply delivery: markdown in, size-capped messages out.

``ReplyDelivery`` owns the only cross-call state of the pipeline, the list of
markers the previous block left open, so one instance corresponds to one
logical message stream. ``BlockStreamer`` sits in front of it for streamed
model output.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Awaitable, Callable

from loguru import logger

from mdchunk.config.schema import BlockChunkingConfig, DeliveryProfile
from mdchunk.markdown.block_chunker import EmbeddedBlockChunker
from mdchunk.markdown.format import prepare_reply_chunks

# send(chunk, reply_to) -> platform response
SendFn = Callable[..., Awaitable[Any]]

DEBUG_DUMP_ENV = "MDCHUNK_DEBUG_DUMP"


class ReplyDelivery:
    """Chunk replies and hand every chunk to *send*, threading pending markers."""

    def __init__(self, send: SendFn, profile: DeliveryProfile | None = None):
        self._send = send
        self.profile = profile or DeliveryProfile()
        self.pending_markers: list[str] = []
        self._block_index = 0
        self._chunk_index = 0

    def reset(self) -> None:
        """Forget carried-over markers (new conversation)."""
        self.pending_markers = []

    def _dump_dir(self) -> Path | None:
        target = self.profile.debug_dump_dir or os.environ.get(DEBUG_DUMP_ENV)
        return Path(target) if target else None

    def _debug_dump(self, stage: str, index: int, text: str) -> None:
        dump_dir = self._dump_dir()
        if dump_dir is None:
            return
        try:
            dump_dir.mkdir(parents=True, exist_ok=True)
            (dump_dir / f"{index:02d}-{stage}.txt").write_text(text, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Debug dump to {dump_dir} failed: {e}")

    async def deliver(self, text: str, reply_to: str | None = None) -> list[str]:
        """Send *text* as one or more messages and return the chunks sent.

        Only the first chunk carries *reply_to*.
        """
        block_idx = self._block_index
        self._block_index += 1
        self._debug_dump("raw", block_idx, text or "")

        reply = prepare_reply_chunks(text, self.profile, self.pending_markers)
        self._debug_dump("processed", block_idx, reply.processed_text)

        if not reply.processed_text.strip():
            return []
        self.pending_markers = reply.unclosed_markers

        reply_to = (reply_to or "").strip() or None
        for i, chunk in enumerate(reply.chunks):
            self._debug_dump("chunk", self._chunk_index, chunk)
            self._chunk_index += 1
            try:
                await self._send(chunk, reply_to if i == 0 else None)
            except Exception as e:
                logger.error(f"Delivery failed at chunk {i + 1}/{len(reply.chunks)}: {e}")
                raise

        logger.info(f"Delivered {len(reply.chunks)} chunk(s), pending markers={self.pending_markers}")
        return reply.chunks


class BlockStreamer:
    """Feed streamed deltas through an :class:`EmbeddedBlockChunker` into a delivery."""

    def __init__(
        self,
        delivery: ReplyDelivery,
        chunking: BlockChunkingConfig | None = None,
        reply_to: str | None = None,
    ):
        self.delivery = delivery
        self.chunker = EmbeddedBlockChunker(chunking or BlockChunkingConfig())
        self._reply_to = reply_to
        self._sent_any = False

    async def _deliver_blocks(self, blocks: list[str]) -> list[str]:
        sent: list[str] = []
        for block in blocks:
            reply_to = None if self._sent_any else self._reply_to
            chunks = await self.delivery.deliver(block, reply_to=reply_to)
            if chunks:
                self._sent_any = True
            sent.extend(chunks)
        return sent

    async def push(self, delta: str) -> list[str]:
        """Buffer *delta* and deliver every block that became ready."""
        self.chunker.append(delta)
        blocks: list[str] = []
        self.chunker.drain(force=False, emit=blocks.append)
        return await self._deliver_blocks(blocks)

    async def finish(self) -> list[str]:
        """Deliver whatever is still buffered."""
        blocks: list[str] = []
        self.chunker.drain(force=True, emit=blocks.append)
        self.chunker.reset()
        return await self._deliver_blocks(blocks)
