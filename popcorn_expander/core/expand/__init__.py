"""Expansion engine.

Walks a source object graph, keeping only mapped properties that are either
always expanded or requested by the include list.
"""
