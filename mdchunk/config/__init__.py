"""Configuration module for mdchunk."""

from mdchunk.config.loader import load_config
from mdchunk.config.schema import Config, DeliveryProfile

__all__ = ["Config", "DeliveryProfile", "load_config"]
