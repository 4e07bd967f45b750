"""Shared utilities for Feed Collector."""
