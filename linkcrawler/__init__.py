"""
Link Crawler

Crawls a single website breadth-first and checks whether the domains it
links out to have expired.
"""

__version__ = "1.0.0"
__description__ = "Single-site crawler that catalogs external links and flags expired domains"
