"""Selective object projection: expand registered objects into plain dicts."""

from loguru import logger

# Library logging stays silent until an application opts in.
logger.disable("popcorn_expander")
