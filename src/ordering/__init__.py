"""
Ordering: cart arithmetic, persisted settings and history, and the order
lifecycle state machine.
"""
