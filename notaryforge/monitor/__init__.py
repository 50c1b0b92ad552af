"""Notaryforge release monitor: terminal rendering of release reports.

Modules
-------
renderer
    ``ReportRenderer`` turns a ``ReleaseReport`` into Rich renderables:
    a summary panel with the trust level and next action, plus a table of
    the run's state transitions.
"""
