"""
Core package for configuration and logging shared by every service.
"""
