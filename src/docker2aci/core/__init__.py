"""Shared building blocks: types, reference parsing and HTTP sessions."""
