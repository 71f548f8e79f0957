"""
Settlement reporting service package.
"""
