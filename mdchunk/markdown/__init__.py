"""Markdown processing: fences, tables, chunking and marker rebalancing."""
