"""
Catalog service package.

Read access to restaurants, menu items, users and platform rates as the order
engine needs them.
"""
