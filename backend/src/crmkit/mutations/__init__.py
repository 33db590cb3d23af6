"""Mutation Gateway - create, update and cascade delete."""

from crmkit.mutations.gateway import DeleteResult, MutationGateway

__all__ = ["DeleteResult", "MutationGateway"]
