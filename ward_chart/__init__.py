"""Clinical chart scheduling and time-grid engine.

This package contains the domain models and the pure scheduling, grid,
dosage and summary logic of a hospitalization chart, isolated from the
persistence layer for easy testing and reasoning.
"""
