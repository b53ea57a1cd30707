"""
Newsletter subscriptions. Unsubscribing is a soft flag so the address can be
reactivated later without losing its history.
"""
