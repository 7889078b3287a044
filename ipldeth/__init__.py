"""Read Ethereum IPLD data (headers, uncles, transactions, receipts, state, storage) from an indexed database."""

__version__ = "0.1.0"
__all__ = ["nodes", "subscription_config", "types", "retriever"]