"""
Order lifecycle service package.
"""
