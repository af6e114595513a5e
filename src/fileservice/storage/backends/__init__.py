"""Provider adapters implementing the ObjectStore contract.

Adapters are imported from their own modules so that only the provider SDK
in use needs to be importable at runtime.
"""
