"""Room ledger services: store reads, atomic operations and fan-out.

HTTP routes and socket handlers import from here, keeping transport
concerns separated from the money-movement rules.
"""
