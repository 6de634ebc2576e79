"""
Record types managed by the callable endpoints, one module per collection.
"""
