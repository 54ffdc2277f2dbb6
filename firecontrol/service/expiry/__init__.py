"""
Expiry module for firecontrol.

Periodic revocation of expired grants.
"""

from .sweeper import ExpirySweeper, SweepReport, SweeperState, DEFAULT_SWEEP_INTERVAL

__all__ = ["ExpirySweeper", "SweepReport", "SweeperState", "DEFAULT_SWEEP_INTERVAL"]
