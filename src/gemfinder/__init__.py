"""Hidden Gem Discovery and Check-in Tool.

A command-line tool and local web browser to discover points of interest
("gems") on an interactive map, check into them, organize them into folders,
and view visit statistics such as streaks, badges, and category breakdowns.
"""

__version__ = "0.1.0"

__author__ = "gemfinder contributors"
__license__ = "Apache-2.0"

__all__ = ["__version__"]
