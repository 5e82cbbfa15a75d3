"""
Trip workflow graph: state, configuration, node table, routing, wiring,
human-in-the-loop handling, the executor and its HTTP API.
"""
