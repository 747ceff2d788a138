"""
External data boundaries: news feeds and price sources.

Each function performs one blocking HTTP request with its own timeout and
raises on failure; recovery and fallback live in the core package.
"""
