"""
Formula Graph - Extract mathematical formulas from papers and map their dependencies.

This package provides tools to:
- Split plain paper text into sections
- Extract formulas with stable IDs, context and variables
- Classify each formula's rhetorical role
- Track where symbols are defined and used
- Infer dependencies between formulas and draw them as diagrams
"""

__version__ = "0.1.0"
