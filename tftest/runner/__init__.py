"""
Runner package.

Provides discovery, the per-example lifecycle, the parallel orchestrator
and the test harness they report into.
"""
