"""Server-sent event relay.

Sub-modules:
- ``framing`` : SSE event formatting and chunk reassembly
- ``relay``   : reconnecting upstream-to-sink relay with backoff
"""
