"""
Pricing service package.

Holds the pure pricing engine that turns menu selections and platform rates
into the frozen financial breakdown of an order.
"""
