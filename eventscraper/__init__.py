"""
eventscraper – crawl configured web pages, extract future events with a
generative model and store them idempotently.
"""

__version__ = "0.1.0"
