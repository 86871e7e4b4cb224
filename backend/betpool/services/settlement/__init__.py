"""Round settlement and ranking engine.

Scoring, round lifecycle, match settlement, leaderboard, prize allocation
and notification fan-out. HTTP routes, socket handlers and CLI commands
import from here and stay free of pool rules.
"""
