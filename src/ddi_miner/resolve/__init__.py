"""
Drug identifier resolution.

Resolves free-text drug names to RxNorm concept identifiers (RXCUI).
Resolution is best effort: resolvers return None instead of raising.
"""

from ddi_miner.resolve.rxnorm import DrugResolver, NullResolver, RxNormResolver

__all__ = ["DrugResolver", "NullResolver", "RxNormResolver"]
