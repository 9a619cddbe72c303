"""
Debounce feature package: coalesces bursts of inbound human messages into
one downstream response per burst.
"""
