"""Adapters over external collaborators: RPC nodes, indexers, pricing and swap APIs."""
