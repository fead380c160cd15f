"""Sales queue digest for Pipedrive.

Aggregates three saved-filter result sets (overdue activities, activities
due today, deals missing a next action) into one enriched digest.
"""

__version__ = "0.2.0"
