"""
Key-value persistence endpoint.

Stores the whole inventory record under a single key; last write wins.
"""
