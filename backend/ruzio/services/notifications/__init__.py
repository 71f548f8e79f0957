"""
Notification service package.
"""
