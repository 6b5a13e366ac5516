"""
Dependency assembly: decoding, heuristics, the assembler and enrichment.
"""

from .assembler import AssemblyResult, DependencyAssembler, graft_ancestor
from .decoding import DecodeError, decode_ancestor, decode_record, decode_records
from .enrichment import AncestorEnricher
from .names import strip_hash_qualifier

__all__ = [
    "AncestorEnricher",
    "AssemblyResult",
    "DecodeError",
    "DependencyAssembler",
    "decode_ancestor",
    "decode_record",
    "decode_records",
    "graft_ancestor",
    "strip_hash_qualifier",
]
