"""Test package for the Dual N-Back trainer.

Core tests drive the session engine with a fake clock and a recording
presentation surface. UI tests run headlessly using pygame's dummy video
and audio drivers. To run these tests, execute ``pytest`` from the project
root.
"""
