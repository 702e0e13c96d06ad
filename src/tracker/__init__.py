"""
Collection Tracker: Discogs collection sync and marketplace analytics

Modules:
- discogs: Rate-limited client for collection, wantlist and marketplace stats
- database: SQLite store and versioned schema migrations
- sync: Worker pool, price fetch task and sync orchestrator
- analytics: Trend, demand, sell-score and collection value views
"""
