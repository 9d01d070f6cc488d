"""entsporter

Export, import and bulk-migrate App Search engine configuration (schema,
synonyms, curations, search settings and crawler config) between clusters.
"""

__version__ = '0.1.0'

from .cli.main import main

__all__ = ['main']
