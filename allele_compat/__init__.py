"""
Allele compatibility toolkit.

Normalizes genotype files from many sources into one canonical model and
compares a patient sample against any number of comparison samples:
identity-by-descent, relationship prediction, HLA typing, organ transplant
compatibility, disease risk and pharmacogenomic variant matching.
"""

__version__ = "1.0.0"
