"""
Shared pytest configuration; makes the feed_collector package importable from a checkout.
"""
