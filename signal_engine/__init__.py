"""Core signal-generation logic: indicators, analyzers, scoring, ensemble.

This package contains pure business logic with no I/O dependencies
(no database, no network, no file access). It is shared between callers
that analyze the latest bars and the walk-forward backtester (walkforward/).
"""
