"""
Section Purger

Cache invalidation for Section-hosted Varnish proxies:
1. Compiles invalidation instructions (tags, URLs, paths, domains, ...) into ban expressions
2. Bundles tag invalidations into digest-based batches
3. Sends bans to the Section proxy state API
4. Reports per-invalidation outcomes back to the caller's queue
"""

__version__ = "0.1.0"
