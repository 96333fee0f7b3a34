# File: levelcontrasts/__init__.py
# Location: levelcontrasts/levelcontrasts/__init__.py

"""
levelcontrasts Package.

This package runs pairwise contrasts between the levels of a categorical
variable embedded in a count or compositional regression model, and reports
corrected effect estimates as tables.
"""

from .version import __version__
