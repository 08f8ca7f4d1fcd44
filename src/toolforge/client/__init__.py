"""Client side of a paid ToolForge run.

Modules
-------
payment
    Approve-then-pay coordinator and the wallet provider protocol.
wallet
    web3.py JSON-RPC wallet provider.
pipeline
    Sequential per-variant image requests.
session
    Session controller owning the request, payment and images.
cli
    ``toolforge-generate`` command.
"""
