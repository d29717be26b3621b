"""Realtime control plane.

Key components:
- SignalChannel: inbound progress/callback signals from running nodes
- InterpolationEngine: animated window moves driven by clock progress
- ActionExecutor: applies sequential and parallel action groups
- EventScheduler: single decision loop matching signals against triggers
- SimulatedPlayback: stand-in clocks for dry runs
"""
