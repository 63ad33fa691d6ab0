"""
Configuration management for llmstream.

This package provides the configuration schema and the loader that merges
user-wide and project-specific TOML files.
"""
