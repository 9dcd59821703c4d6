"""
Proxy caching package.

Provides the key normalizer, the TTL rule engine, the store adapters and
the caching stages that sit between routes and the upstream API.
"""
