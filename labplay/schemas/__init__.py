"""Typed models for notebook cells, chat messages and agent stream events."""
