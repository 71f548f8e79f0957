"""
Delivery assignment service package.
"""
