"""
Core infrastructure: configuration-bound database, redis, logging, metrics
"""
