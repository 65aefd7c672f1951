"""Client side of the room ledger.

Everything here runs on a player's device: the HTTP ledger client, realtime
subscriptions, local storage and the session/rejoin controller. Local state
is a disposable cache rebuilt from the server after every change.
"""
