"""Delivery adapters for chat platforms."""
