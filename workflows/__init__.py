"""Workflow definition & dependency graph engine.

Models the multi-step approval process of an accreditation application as a
directed graph of named steps and keeps the persisted linear order consistent
with the freely positioned editing graph.
"""

__version__ = "0.1.0"
