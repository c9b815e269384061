"""
TIRDS - Trading Information Relevance Decider System.

Evaluates a proposed trade by combining cached market intelligence with
parallel domain specialists and one synthesis step.
"""

__version__ = "0.1.0"
