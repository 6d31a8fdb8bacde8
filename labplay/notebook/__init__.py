"""Notebook cells, the pre-execution code policy and cell execution."""
