"""Configuration package; import ``settings`` from ``sessionguard.core.config.settings``."""
