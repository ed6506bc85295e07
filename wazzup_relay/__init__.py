"""
Wazzup Relay - Wazzup chat webhook relay with a durable outbound queue.
"""
__version__ = "1.0.0"
