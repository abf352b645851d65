"""
External collector gateway: bearer tokens, secret encryption, rate limiting
and the CollectorGateway entry points used by the HTTP surface.

Import the submodules directly (``notice_ledger.gateway.collector_gateway``
and friends); this package keeps no re-exports so that services may import
``gateway.secrets`` without loading the gateway itself.
"""
