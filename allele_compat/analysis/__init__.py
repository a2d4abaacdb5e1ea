"""
Analysis modules.

Every module exposes ``run(sample, other, config)``; ``other`` is None for a
single-sample profile. Relationship prediction and organ compatibility also
accept the upstream IBD / HLA result so a chain does not recompute it.
"""

from collections.abc import Callable

from allele_compat.analysis import disease, hla, ibd, organ, pharmacogenomics, relationship
from allele_compat.models import ModuleTag

MODULE_RUNNERS: dict[ModuleTag, Callable] = {
    ModuleTag.IBD: ibd.run,
    ModuleTag.RELATIONSHIP: relationship.run,
    ModuleTag.HLA: hla.run,
    ModuleTag.ORGAN: organ.run,
    ModuleTag.DISEASE: disease.run,
    ModuleTag.PHARMACOGENOMICS: pharmacogenomics.run,
}

# Module chains scheduled as one sub-task: (upstream, downstream keyword)
MODULE_CHAINS: tuple[tuple[ModuleTag, ...], ...] = (
    (ModuleTag.IBD, ModuleTag.RELATIONSHIP),
    (ModuleTag.HLA, ModuleTag.ORGAN),
    (ModuleTag.DISEASE,),
    (ModuleTag.PHARMACOGENOMICS,),
)

# Keyword under which a downstream module receives its upstream result
UPSTREAM_KEYWORDS: dict[ModuleTag, str] = {
    ModuleTag.IBD: "ibd",
    ModuleTag.HLA: "hla",
}

__all__ = ["MODULE_CHAINS", "MODULE_RUNNERS", "UPSTREAM_KEYWORDS"]
