"""dsflint - Linter for DSF process plugins.

dsflint resolves the BPMN and FHIR resources a process plugin declares, reports
resources that ship without being referenced, and checks FHIR instances against
the cardinality and authorization rules of the profiles and definitions they link to.
"""

__version__ = "0.1.0"
__author__ = "dsflint contributors"
__description__ = "Linter for DSF process plugins"

from dsflint.config import DsflintConfig

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    "DsflintConfig",
]
