# path: src/runtime/__init__.py

"""
Runtime wiring package for the miner controller.

Holds the glue that stitches together:
- the controller (agent.*)
- the monitoring layer (monitoring.*)
- failure reporting helpers

Usage from a host:
    from runtime.agent_runtime_main import run_miner_runtime
"""
