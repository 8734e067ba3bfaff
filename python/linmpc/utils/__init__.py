"""Shared helpers for linmpc."""
