"""
Agent nodes of the trip workflow.

Each module exposes a create_<node>_node(...) factory returning an async
(state) -> patch function, plus fallback_patch(state) used when the node
raises unexpectedly.
"""
