"""State/store layer.

This package is the single source of truth for how the subscription
snapshot and the stream of feed updates are folded into a per-topic
mirror of the remote live timing state.
"""
