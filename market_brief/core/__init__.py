"""
Core modules for Market Brief.

This package contains backend selection under a spending ceiling,
chunked generation, failure recovery for volatile feeds, cached price
resolution and the orchestration that ties them together.
"""
